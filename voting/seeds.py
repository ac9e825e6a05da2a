"""Seed proposals: curated catalog and the diversity-first picker

A new week gets a few system-suggested passages so the ballot is never
empty. Picks round-robin across categories not yet used in the same call,
then fall back to any category with passages left; inside a category the
choice is uniform. Exclusion compares references case-insensitively after
trimming.

Two modes:
    pick_seed_passages(count, excluded, rng)   -- caller-supplied randomness
    pick_seeds_for_date(start_date, count, excluded)
        -- seeded from the calendar date, so every group whose week starts
           on the same date (with the same exclusions) sees the same seeds
"""

import random
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List

from database.models import ProposalDraft
from voting.reference import reference_key

RandomSource = Callable[[], float]

OT_NARRATIVE = "ot_narrative"
WISDOM = "wisdom"
PROPHETS = "prophets"
GOSPELS = "gospels"
EPISTLES = "epistles"
REVELATION = "revelation"

CATEGORIES = (OT_NARRATIVE, WISDOM, PROPHETS, GOSPELS, EPISTLES, REVELATION)


@dataclass(frozen=True)
class SeedPassage:
    reference: str
    note: str
    category: str

    def to_draft(self) -> ProposalDraft:
        return ProposalDraft(reference=self.reference, note=self.note, is_seed=True)


SEED_PASSAGES: List[SeedPassage] = [
    SeedPassage("Genesis 1:1-31", "The creation of the heavens and the earth", OT_NARRATIVE),
    SeedPassage("Genesis 3:1-24", "The fall of man in the garden of Eden", OT_NARRATIVE),
    SeedPassage("Genesis 12:1-9", "God's call and promise to Abram", OT_NARRATIVE),
    SeedPassage("Genesis 22:1-19", "Abraham's faith tested with Isaac", OT_NARRATIVE),
    SeedPassage("Genesis 32:22-32", "Jacob wrestles with God at Peniel", OT_NARRATIVE),
    SeedPassage("Genesis 37:1-36", "Joseph sold by his brothers", OT_NARRATIVE),
    SeedPassage("Genesis 45:1-15", "Joseph reveals himself to his brothers", OT_NARRATIVE),
    SeedPassage("Exodus 3:1-22", "Moses and the burning bush", OT_NARRATIVE),
    SeedPassage("Exodus 14:10-31", "Crossing the Red Sea", OT_NARRATIVE),
    SeedPassage("Exodus 20:1-21", "The Ten Commandments", OT_NARRATIVE),
    SeedPassage("Joshua 1:1-9", "Be strong and courageous", OT_NARRATIVE),
    SeedPassage("Joshua 24:14-28", "Choose this day whom you will serve", OT_NARRATIVE),
    SeedPassage("Judges 6:11-40", "Gideon called by God", OT_NARRATIVE),
    SeedPassage("Ruth 1:1-22", "Ruth's loyalty to Naomi", OT_NARRATIVE),
    SeedPassage("1 Samuel 3:1-21", "God calls young Samuel", OT_NARRATIVE),
    SeedPassage("1 Samuel 16:1-13", "David anointed as king", OT_NARRATIVE),
    SeedPassage("1 Samuel 17:32-50", "David defeats Goliath", OT_NARRATIVE),
    SeedPassage("2 Samuel 11:1-27", "David and Bathsheba, consequences of sin", OT_NARRATIVE),
    SeedPassage("1 Kings 3:5-28", "Solomon asks for wisdom", OT_NARRATIVE),
    SeedPassage("1 Kings 18:20-40", "Elijah and the prophets of Baal", OT_NARRATIVE),
    SeedPassage("1 Kings 19:1-18", "Elijah flees and hears God's still small voice", OT_NARRATIVE),
    SeedPassage("2 Kings 5:1-19", "Naaman healed of leprosy", OT_NARRATIVE),
    SeedPassage("Daniel 3:1-30", "Shadrach, Meshach, and Abednego in the fiery furnace", OT_NARRATIVE),
    SeedPassage("Daniel 6:1-28", "Daniel in the lion's den", OT_NARRATIVE),
    SeedPassage("Jonah 1:1-17", "Jonah flees from God", OT_NARRATIVE),
    SeedPassage("Jonah 3:1-10", "Nineveh repents", OT_NARRATIVE),
    SeedPassage("Nehemiah 1:1-11", "Nehemiah's prayer for Jerusalem", OT_NARRATIVE),
    SeedPassage("Esther 4:1-17", "For such a time as this", OT_NARRATIVE),
    SeedPassage("Psalm 1", "The way of the righteous and the wicked", WISDOM),
    SeedPassage("Psalm 8", "How majestic is your name in all the earth", WISDOM),
    SeedPassage("Psalm 16", "Preserve me, O God, fullness of joy", WISDOM),
    SeedPassage("Psalm 19", "The heavens declare the glory of God", WISDOM),
    SeedPassage("Psalm 23", "The Lord is my shepherd", WISDOM),
    SeedPassage("Psalm 27", "The Lord is my light and my salvation", WISDOM),
    SeedPassage("Psalm 34", "Taste and see that the Lord is good", WISDOM),
    SeedPassage("Psalm 37:1-11", "Do not fret, delight in the Lord", WISDOM),
    SeedPassage("Psalm 40:1-10", "He set my feet upon a rock", WISDOM),
    SeedPassage("Psalm 42", "As the deer pants for streams of water", WISDOM),
    SeedPassage("Psalm 46", "God is our refuge and strength", WISDOM),
    SeedPassage("Psalm 51", "Create in me a clean heart", WISDOM),
    SeedPassage("Psalm 63", "My soul thirsts for you", WISDOM),
    SeedPassage("Psalm 84", "How lovely is your dwelling place", WISDOM),
    SeedPassage("Psalm 90", "Teach us to number our days", WISDOM),
    SeedPassage("Psalm 91", "He who dwells in the shelter of the Most High", WISDOM),
    SeedPassage("Psalm 103", "Bless the Lord, O my soul", WISDOM),
    SeedPassage("Psalm 119:1-24", "Blessed are the undefiled in the way", WISDOM),
    SeedPassage("Psalm 121", "I lift up my eyes to the hills", WISDOM),
    SeedPassage("Psalm 139:1-18", "You have searched me and known me", WISDOM),
    SeedPassage("Psalm 145", "Great is the Lord and greatly to be praised", WISDOM),
    SeedPassage("Proverbs 1:1-19", "The beginning of knowledge", WISDOM),
    SeedPassage("Proverbs 2:1-22", "The value of wisdom", WISDOM),
    SeedPassage("Proverbs 3:1-12", "Trust in the Lord with all your heart", WISDOM),
    SeedPassage("Proverbs 4:1-27", "Guard your heart above all else", WISDOM),
    SeedPassage("Proverbs 31:10-31", "The excellent wife", WISDOM),
    SeedPassage("Ecclesiastes 3:1-15", "A time for everything under heaven", WISDOM),
    SeedPassage("Ecclesiastes 12:1-14", "Remember your Creator in your youth", WISDOM),
    SeedPassage("Song of Solomon 2:1-17", "Love poetry, the rose of Sharon", WISDOM),
    SeedPassage("Job 1:1-22", "Job's suffering and faithfulness", WISDOM),
    SeedPassage("Job 38:1-41", "God answers Job from the whirlwind", WISDOM),
    SeedPassage("Isaiah 6:1-13", "Isaiah's vision, here am I, send me", PROPHETS),
    SeedPassage("Isaiah 9:1-7", "For unto us a child is born", PROPHETS),
    SeedPassage("Isaiah 40:1-31", "Comfort my people, those who wait on the Lord", PROPHETS),
    SeedPassage("Isaiah 43:1-13", "Fear not, for I have redeemed you", PROPHETS),
    SeedPassage("Isaiah 53:1-12", "The suffering servant", PROPHETS),
    SeedPassage("Isaiah 55:1-13", "Come, everyone who thirsts", PROPHETS),
    SeedPassage("Isaiah 61:1-11", "The Spirit of the Lord is upon me", PROPHETS),
    SeedPassage("Jeremiah 1:1-19", "Before I formed you in the womb I knew you", PROPHETS),
    SeedPassage("Jeremiah 17:5-10", "Blessed is the man who trusts in the Lord", PROPHETS),
    SeedPassage("Jeremiah 29:10-14", "Plans to prosper you and not to harm you", PROPHETS),
    SeedPassage("Jeremiah 31:31-34", "The new covenant", PROPHETS),
    SeedPassage("Ezekiel 37:1-14", "Valley of dry bones", PROPHETS),
    SeedPassage("Hosea 6:1-6", "Return to the Lord, steadfast love, not sacrifice", PROPHETS),
    SeedPassage("Joel 2:12-32", "Return to the Lord, I will pour out my Spirit", PROPHETS),
    SeedPassage("Amos 5:18-27", "Let justice roll down like waters", PROPHETS),
    SeedPassage("Micah 6:6-8", "Do justice, love mercy, walk humbly", PROPHETS),
    SeedPassage("Habakkuk 3:17-19", "Yet I will rejoice in the Lord", PROPHETS),
    SeedPassage("Malachi 3:1-12", "The messenger of the covenant, bring the tithes", PROPHETS),
    SeedPassage("Matthew 4:1-11", "Jesus tempted in the wilderness", GOSPELS),
    SeedPassage("Matthew 5:1-16", "The Beatitudes, salt and light", GOSPELS),
    SeedPassage("Matthew 5:17-48", "You have heard it said, the higher law", GOSPELS),
    SeedPassage("Matthew 6:1-18", "The Lord's Prayer and true devotion", GOSPELS),
    SeedPassage("Matthew 6:25-34", "Do not be anxious, seek first the kingdom", GOSPELS),
    SeedPassage("Matthew 7:1-29", "Judge not, build on the rock", GOSPELS),
    SeedPassage("Matthew 13:1-23", "Parable of the sower", GOSPELS),
    SeedPassage("Matthew 14:22-33", "Jesus walks on water", GOSPELS),
    SeedPassage("Matthew 18:1-14", "Become like children, the lost sheep", GOSPELS),
    SeedPassage("Matthew 25:14-30", "Parable of the talents", GOSPELS),
    SeedPassage("Matthew 25:31-46", "The sheep and the goats, as you did to the least", GOSPELS),
    SeedPassage("Matthew 28:1-20", "The resurrection and great commission", GOSPELS),
    SeedPassage("Mark 1:1-20", "The beginning of the gospel, Jesus calls disciples", GOSPELS),
    SeedPassage("Mark 2:1-12", "The paralytic lowered through the roof", GOSPELS),
    SeedPassage("Mark 4:35-41", "Jesus calms the storm", GOSPELS),
    SeedPassage("Mark 10:17-31", "The rich young ruler", GOSPELS),
    SeedPassage("Mark 10:32-45", "The Son of Man came to serve", GOSPELS),
    SeedPassage("Luke 1:26-56", "The annunciation and Mary's song", GOSPELS),
    SeedPassage("Luke 2:1-20", "The birth of Jesus", GOSPELS),
    SeedPassage("Luke 4:14-30", "Jesus rejected at Nazareth", GOSPELS),
    SeedPassage("Luke 10:25-37", "The good Samaritan", GOSPELS),
    SeedPassage("Luke 10:38-42", "Mary and Martha", GOSPELS),
    SeedPassage("Luke 15:1-10", "The lost sheep and lost coin", GOSPELS),
    SeedPassage("Luke 15:11-32", "The prodigal son", GOSPELS),
    SeedPassage("Luke 18:1-14", "The persistent widow and the Pharisee and tax collector", GOSPELS),
    SeedPassage("Luke 19:1-10", "Zacchaeus the tax collector", GOSPELS),
    SeedPassage("Luke 24:13-35", "The road to Emmaus", GOSPELS),
    SeedPassage("John 1:1-18", "In the beginning was the Word", GOSPELS),
    SeedPassage("John 3:1-21", "You must be born again", GOSPELS),
    SeedPassage("John 4:1-42", "The woman at the well", GOSPELS),
    SeedPassage("John 6:22-40", "I am the bread of life", GOSPELS),
    SeedPassage("John 8:1-11", "The woman caught in adultery", GOSPELS),
    SeedPassage("John 10:1-18", "The good shepherd", GOSPELS),
    SeedPassage("John 11:1-44", "Lazarus raised from the dead", GOSPELS),
    SeedPassage("John 13:1-17", "Jesus washes the disciples' feet", GOSPELS),
    SeedPassage("John 14:1-14", "I am the way, the truth, and the life", GOSPELS),
    SeedPassage("John 15:1-17", "I am the vine, abide in me", GOSPELS),
    SeedPassage("John 17:1-26", "Jesus' high priestly prayer", GOSPELS),
    SeedPassage("John 20:1-31", "The resurrection, Thomas believes", GOSPELS),
    SeedPassage("John 21:1-25", "Jesus restores Peter, feed my sheep", GOSPELS),
    SeedPassage("Acts 2:1-21", "The Holy Spirit at Pentecost", EPISTLES),
    SeedPassage("Acts 2:42-47", "The fellowship of believers", EPISTLES),
    SeedPassage("Acts 9:1-22", "Saul's conversion on the road to Damascus", EPISTLES),
    SeedPassage("Acts 17:16-34", "Paul in Athens, the unknown God", EPISTLES),
    SeedPassage("Romans 1:16-32", "The righteous shall live by faith", EPISTLES),
    SeedPassage("Romans 3:21-31", "Justified by faith, apart from the law", EPISTLES),
    SeedPassage("Romans 5:1-11", "Peace with God through our Lord Jesus Christ", EPISTLES),
    SeedPassage("Romans 6:1-14", "Dead to sin, alive to God", EPISTLES),
    SeedPassage("Romans 8:1-17", "Life in the Spirit, no condemnation", EPISTLES),
    SeedPassage("Romans 8:18-39", "Nothing can separate us from God's love", EPISTLES),
    SeedPassage("Romans 12:1-21", "Living sacrifices, do not be conformed to this world", EPISTLES),
    SeedPassage("1 Corinthians 1:18-31", "The foolishness of the cross", EPISTLES),
    SeedPassage("1 Corinthians 9:24-27", "Run to win the prize", EPISTLES),
    SeedPassage("1 Corinthians 12:1-31", "One body, many parts, spiritual gifts", EPISTLES),
    SeedPassage("1 Corinthians 13:1-13", "The way of love", EPISTLES),
    SeedPassage("1 Corinthians 15:1-28", "Christ is risen, the resurrection", EPISTLES),
    SeedPassage("2 Corinthians 4:1-18", "Treasure in jars of clay", EPISTLES),
    SeedPassage("2 Corinthians 5:11-21", "New creation, ministry of reconciliation", EPISTLES),
    SeedPassage("2 Corinthians 12:1-10", "My grace is sufficient, power in weakness", EPISTLES),
    SeedPassage("Galatians 2:15-21", "Justified by faith in Christ", EPISTLES),
    SeedPassage("Galatians 5:1-26", "Freedom in Christ, fruit of the Spirit", EPISTLES),
    SeedPassage("Ephesians 1:3-14", "Every spiritual blessing in Christ", EPISTLES),
    SeedPassage("Ephesians 2:1-10", "By grace you have been saved through faith", EPISTLES),
    SeedPassage("Ephesians 3:14-21", "To know the love of Christ", EPISTLES),
    SeedPassage("Ephesians 4:1-16", "Walk worthy, unity in the body", EPISTLES),
    SeedPassage("Ephesians 6:10-20", "The full armor of God", EPISTLES),
    SeedPassage("Philippians 1:3-11", "He who began a good work in you", EPISTLES),
    SeedPassage("Philippians 2:1-11", "Have this mind, Christ's humility and exaltation", EPISTLES),
    SeedPassage("Philippians 3:7-21", "Counting all things as loss for Christ", EPISTLES),
    SeedPassage("Philippians 4:4-13", "Rejoice always, I can do all things through Christ", EPISTLES),
    SeedPassage("Colossians 1:15-23", "The supremacy of Christ", EPISTLES),
    SeedPassage("Colossians 3:1-17", "Set your minds on things above", EPISTLES),
    SeedPassage("1 Thessalonians 4:13-18", "The coming of the Lord", EPISTLES),
    SeedPassage("1 Thessalonians 5:12-28", "Rejoice, pray, give thanks, practical holiness", EPISTLES),
    SeedPassage("2 Timothy 2:1-13", "Be strong in the grace, endure", EPISTLES),
    SeedPassage("2 Timothy 3:10-17", "All Scripture is God-breathed", EPISTLES),
    SeedPassage("Hebrews 1:1-14", "God has spoken by his Son", EPISTLES),
    SeedPassage("Hebrews 4:1-16", "A Sabbath rest, approach the throne of grace boldly", EPISTLES),
    SeedPassage("Hebrews 11:1-16", "The hall of faith, by faith they...", EPISTLES),
    SeedPassage("Hebrews 11:17-40", "More from the hall of faith, all commended", EPISTLES),
    SeedPassage("Hebrews 12:1-13", "Run with endurance, looking to Jesus", EPISTLES),
    SeedPassage("James 1:1-27", "Count it all joy, be doers of the word", EPISTLES),
    SeedPassage("James 2:1-26", "Faith without works is dead", EPISTLES),
    SeedPassage("James 3:1-18", "Taming the tongue", EPISTLES),
    SeedPassage("1 Peter 1:3-12", "A living hope, an inheritance imperishable", EPISTLES),
    SeedPassage("1 Peter 2:1-12", "Living stones, a chosen people", EPISTLES),
    SeedPassage("1 Peter 5:1-11", "Cast all your anxieties on him", EPISTLES),
    SeedPassage("2 Peter 1:3-11", "His divine power has granted us everything", EPISTLES),
    SeedPassage("1 John 1:1-10", "Walking in the light", EPISTLES),
    SeedPassage("1 John 3:1-24", "See what kind of love the Father has given us", EPISTLES),
    SeedPassage("1 John 4:7-21", "God is love", EPISTLES),
    SeedPassage("Revelation 1:1-20", "The revelation of Jesus Christ, a vision of glory", REVELATION),
    SeedPassage("Revelation 2:1-7", "Letter to Ephesus, return to your first love", REVELATION),
    SeedPassage("Revelation 3:14-22", "Letter to Laodicea, I stand at the door and knock", REVELATION),
    SeedPassage("Revelation 4:1-11", "The throne room of heaven", REVELATION),
    SeedPassage("Revelation 5:1-14", "The Lamb is worthy to open the scroll", REVELATION),
    SeedPassage("Revelation 7:9-17", "The great multitude from every nation", REVELATION),
    SeedPassage("Revelation 21:1-8", "A new heaven and a new earth", REVELATION),
    SeedPassage("Revelation 22:1-21", "The river of life, come, Lord Jesus", REVELATION),
]


def pick_index(rng: RandomSource, size: int) -> int:
    """Map one draw from rng onto an index in range(size)

    The draw is clamped into [0, 0.999999] so a source returning 1.0 (or
    slightly out of range) still lands on the last element.
    """
    if size <= 0:
        raise ValueError("cannot pick from an empty collection")
    raw = min(max(rng(), 0.0), 0.999999)
    return int(raw * size)


def pick_seed_passages(
    count: int,
    excluded: Iterable[str] = (),
    rng: RandomSource = random.random,
    catalog: List[SeedPassage] = SEED_PASSAGES,
) -> List[SeedPassage]:
    """Pick up to count passages, never one whose reference is excluded

    Returns fewer than count when the catalog runs out; never raises for that.
    """
    if count <= 0:
        return []

    excluded_keys = {reference_key(ref) for ref in excluded}

    by_category: "OrderedDict[str, List[SeedPassage]]" = OrderedDict()
    for passage in catalog:
        if reference_key(passage.reference) in excluded_keys:
            continue
        by_category.setdefault(passage.category, []).append(passage)

    picks: List[SeedPassage] = []
    used_categories = set()

    while len(picks) < count and by_category:
        categories = list(by_category)
        unused = [c for c in categories if c not in used_categories]
        pool = unused or categories
        category = pool[pick_index(rng, len(pool))]

        bucket = by_category[category]
        passage = bucket.pop(pick_index(rng, len(bucket)))
        picks.append(passage)
        used_categories.add(category)

        if not bucket:
            del by_category[category]

    return picks


def pick_seeds_for_date(
    start_date: date,
    count: int,
    excluded: Iterable[str] = (),
    catalog: List[SeedPassage] = SEED_PASSAGES,
) -> List[SeedPassage]:
    """Deterministic pick for a week start date

    Same date, count and exclusion set always yield the same passages.
    """
    seeded = random.Random(f"lectio-seeds:{start_date.isoformat()}")
    return pick_seed_passages(count, sorted(set(excluded)), rng=seeded.random, catalog=catalog)
