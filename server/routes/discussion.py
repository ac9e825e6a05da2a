"""
Discussion API - comments, annotations (with replies) and read marks on reading items
"""

from fastapi import APIRouter, Depends

from database.models import User
from server.dependencies import get_current_user, get_services
from server.models.requests import (
    AnnotationReplyRequest,
    AnnotationRequest,
    CommentRequest,
    EditCommentRequest,
    ReadMarkRequest,
)
from voting.services import Services

router = APIRouter(prefix="/api", tags=["discussion"])


@router.get("/reading-items/{reading_item_id}/comments")
async def list_comments(
    reading_item_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    comments = await services.discussion.get_comments(reading_item_id, user.id)
    return {"comments": comments}


@router.post("/reading-items/{reading_item_id}/comments", status_code=201)
async def create_comment(
    reading_item_id: str,
    body: CommentRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    comment = await services.discussion.create_comment(reading_item_id, user.id, body.text, body.parent_id)
    return {"comment_id": comment.id}


@router.patch("/comments/{comment_id}")
async def edit_comment(
    comment_id: str,
    body: EditCommentRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.discussion.edit_comment(comment_id, user.id, body.text)
    return {"ok": True}


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.discussion.delete_comment(comment_id, user.id)
    return {"ok": True}


@router.put("/reading-items/{reading_item_id}/read-mark")
async def set_read_mark(
    reading_item_id: str,
    body: ReadMarkRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    mark = await services.discussion.set_read_mark(reading_item_id, user.id, body.status)
    return {"ok": True, "status": mark.status.value}


@router.get("/reading-items/{reading_item_id}/annotations")
async def list_annotations(
    reading_item_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    annotations = await services.discussion.get_annotations(reading_item_id, user.id)
    return {"annotations": annotations}


@router.post("/reading-items/{reading_item_id}/annotations", status_code=201)
async def create_annotation(
    reading_item_id: str,
    body: AnnotationRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    annotation = await services.discussion.create_annotation(
        reading_item_id, user.id, body.start_verse, body.end_verse, body.text
    )
    return {"annotation_id": annotation.id}


@router.delete("/annotations/{annotation_id}")
async def delete_annotation(
    annotation_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.discussion.delete_annotation(annotation_id, user.id)
    return {"ok": True}


@router.post("/annotations/{annotation_id}/replies", status_code=201)
async def create_annotation_reply(
    annotation_id: str,
    body: AnnotationReplyRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    reply = await services.discussion.create_annotation_reply(annotation_id, user.id, body.text)
    return {"reply_id": reply.id}


@router.delete("/annotation-replies/{reply_id}")
async def delete_annotation_reply(
    reply_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.discussion.delete_annotation_reply(reply_id, user.id)
    return {"ok": True}


@router.get("/notifications")
async def list_notifications(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Latest notifications for the current user, newest first."""
    notifications = await services.discussion.get_notifications(user.id)
    return {"notifications": [n.to_dict() for n in notifications]}
