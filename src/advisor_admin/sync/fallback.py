"""Synthetic fallback generator -- deterministic placeholder data per collection.

Used only when a remote fetch succeeds with zero records, so the admin
console is never blank in development or demos. A fetch error never
triggers synthetic data.

Generation is table-driven: each collection maps field names to generator
functions (pick-from-list, random-in-range, derived-from-other-fields).
Fields are produced in declaration order so derived fields can read
earlier ones; names starting with "_" are scratch values and are dropped
from the final record.

Determinism: every generate() call builds its own random.Random from the
seed, and dates are computed relative to an injectable clock. The same
(seed, clock, collection, count) always yields the same records.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.advisor_admin.sync.fields import (
    format_amount,
    format_display_date,
    format_location,
    slugify,
)
from src.advisor_admin.sync.registry import LISTING_STATUSES, get_collection_config
from src.advisor_admin.sync.schemas import (
    CollectionId,
    CollectionSnapshot,
    Freshness,
    Record,
    SnapshotSource,
)

logger = structlog.get_logger(__name__)


@dataclass
class GenerationContext:
    """Per-record state handed to every field generator."""

    rng: random.Random
    index: int  # 1-based position within the generated collection
    now: datetime
    record: dict[str, Any] = field(default_factory=dict)


FieldGenerator = Callable[[GenerationContext], Any]


# ── Field Generators ────────────────────────────────────────────────────────


def pick(options: Sequence[Any]) -> FieldGenerator:
    return lambda ctx: ctx.rng.choice(options)


def cycle(options: Sequence[Any]) -> FieldGenerator:
    return lambda ctx: options[(ctx.index - 1) % len(options)]


def integer(low: int, high: int) -> FieldGenerator:
    """Uniform integer in [low, high]."""
    return lambda ctx: ctx.rng.randint(low, high)


def chance(probability: float) -> FieldGenerator:
    """True with the given probability."""
    return lambda ctx: ctx.rng.random() < probability


def derived(fn: Callable[[dict[str, Any], GenerationContext], Any]) -> FieldGenerator:
    """Compute a field from the fields generated before it."""
    return lambda ctx: fn(ctx.record, ctx)


def sequence_id(as_string: bool = True) -> FieldGenerator:
    return lambda ctx: str(ctx.index) if as_string else ctx.index


def days_ago(max_days: int, display: bool = True) -> FieldGenerator:
    """A date within the last ``max_days`` days, as a display or ISO string."""

    def _generate(ctx: GenerationContext) -> str:
        moment = ctx.now - timedelta(days=ctx.rng.randrange(max_days))
        return format_display_date(moment) if display else moment.isoformat()

    return _generate


# ── Source Tables ───────────────────────────────────────────────────────────

PLACES: tuple[tuple[str, str], ...] = (
    ("Miami", "FL"), ("Chicago", "IL"), ("New York", "NY"), ("Los Angeles", "CA"),
    ("Dallas", "TX"), ("Boston", "MA"), ("Atlanta", "GA"), ("San Francisco", "CA"),
    ("Denver", "CO"), ("Seattle", "WA"), ("Philadelphia", "PA"), ("Phoenix", "AZ"),
    ("Houston", "TX"), ("Charlotte", "NC"), ("Portland", "OR"), ("Nashville", "TN"),
    ("Austin", "TX"), ("San Diego", "CA"), ("Minneapolis", "MN"), ("New Orleans", "LA"),
    ("Tampa", "FL"), ("St. Louis", "MO"), ("Pittsburgh", "PA"), ("Orlando", "FL"),
    ("Cincinnati", "OH"), ("Kansas City", "MO"), ("Columbus", "OH"),
    ("Indianapolis", "IN"), ("Cleveland", "OH"), ("Milwaukee", "WI"),
)

PRACTICE_KINDS = (
    "Wealth Management Practice", "Financial Planning Firm", "RIA Practice",
    "Advisory Business", "Investment Management Firm", "Financial Services Practice",
    "Family Office", "Asset Management Practice",
)

SALE_TYPES = ("Full Practice Sale", "Partial Book Sale", "Succession Planning", "Merger Opportunity")

FIRMS = (
    "Morgan Stanley", "Merrill Lynch", "UBS Wealth", "Ameriprise", "J.P. Morgan",
    "RBC", "Raymond James", "Edward Jones", "LPL Financial", "Wells Fargo",
    "Rockefeller Capital", "Commonwealth Financial",
)

FIRM_CATEGORIES = ("Wirehouse", "Regional", "Independent", "RIA", "Boutique")

PARAMETER_NAMES = ("growthRate", "payoutRate", "retentionRate", "upfrontMultiple")

BLOG_TITLES = (
    "How Wirehouses Are Responding to the Disruption in Wealth Management",
    "Maximizing Your Book Value Before Transition",
    "5 Key Trends Reshaping Wealth Management",
    "The Complete Guide to Transitioning to Independence",
    "Understanding Upfront and Backend Compensation",
    "Comparing Wirehouse vs. Independent Models",
    "Building a Client Retention Strategy During Transition",
    "Technology Essentials for Modern Financial Advisors",
    "The Future of Fee-Based Advisory Services",
    "Navigating Regulatory Changes for Financial Advisors",
    "How to Evaluate Firm Culture Before Making a Move",
    "Succession Planning for Financial Advisors",
    "Breaking Down the FINRA Transition Process",
    "Compensation Trends in Wealth Management",
    "The Hidden Costs of Transitioning Firms",
    "Understanding Protocol Firms vs. Non-Protocol Firms",
    "Navigating Non-Compete Agreements in Financial Services",
    "How to Calculate the True Value of Your Book",
    "Tax Implications of Advisor Transitions",
    "The Advisor's Guide to RIA Custodian Selection",
)

BLOG_CATEGORIES = ("Transitions", "Compensation", "Practice Management", "Industry Trends")

NEWS_HEADLINES = (
    "Veteran Advisor Team Moves $1.2B Book to Independent RIA",
    "Regional Firm Expands Recruiting Package for Senior Advisors",
    "Wirehouse Adjusts Deferred Compensation Schedule",
    "Breakaway Team Launches Multi-Family Office",
    "Aggregator Closes Third Acquisition of the Quarter",
    "Custodian Announces New Transition Support Program",
    "Industry Survey Shows Rising Independent Advisor Headcount",
    "Broker-Dealer Reports Record Recruiting Year",
)

NEWS_SOURCES = ("Financial Advisor News", "Wealth Management Wire", "Advisor Hub Daily")

NEWS_CATEGORIES = ("Advisor Moves", "Industry News", "Regulation", "M&A")

FIRST_NAMES = ("James", "Maria", "Robert", "Linda", "David", "Susan", "Michael", "Karen", "Daniel", "Emily")

LAST_NAMES = ("Smith", "Johnson", "Garcia", "Miller", "Davis", "Wilson", "Anderson", "Thomas", "Moore", "Clark")


# ── Derived Field Rules ─────────────────────────────────────────────────────


def _listing_status(record: dict[str, Any], ctx: GenerationContext) -> str:
    if ctx.rng.random() > 0.2:
        return LISTING_STATUSES[0]
    return LISTING_STATUSES[1] if ctx.rng.random() > 0.5 else LISTING_STATUSES[2]


def _blog_slug(record: dict[str, Any], ctx: GenerationContext) -> str:
    slug = slugify(record["title"])
    # Titles repeat once the table is exhausted; slugs must stay unique
    return slug if ctx.index <= len(BLOG_TITLES) else f"{slug}-{ctx.index}"


def _deal_notes(record: dict[str, Any], ctx: GenerationContext) -> str:
    return (
        f"{record['firm']} recruiting package: {record['upfrontMin']}-{record['upfrontMax']}% "
        f"upfront, {record['backendMin']}-{record['backendMax']}% backend on trailing-12 revenue."
    )


RecordTemplate = dict[str, FieldGenerator]

TEMPLATES: dict[CollectionId, RecordTemplate] = {
    CollectionId.PRACTICE_LISTINGS: {
        "id": sequence_id(),
        "_place": pick(PLACES),
        "_kind": pick(PRACTICE_KINDS),
        "_revenue_k": integer(500, 2999),
        "location": derived(lambda r, ctx: format_location(*r["_place"])),
        "title": derived(lambda r, ctx: f"{r['_place'][0]} {r['_kind']}"),
        "type": pick(SALE_TYPES),
        "aum": derived(lambda r, ctx: f"${ctx.rng.randint(50, 349)}M"),
        "revenue": derived(lambda r, ctx: format_amount(r["_revenue_k"] / 1000)),
        "price": derived(lambda r, ctx: format_amount(r["_revenue_k"] * 3 / 1000)),
        "clients": integer(60, 220),
        "status": derived(_listing_status),
        "highlighted": chance(0.3),
        "description": derived(
            lambda r, ctx: (
                f"High-quality {r['_kind'].lower()} with strong client relationships "
                f"and growth potential in the {r['location']} area."
            )
        ),
        "date": days_ago(60),
    },
    CollectionId.BLOG_POSTS: {
        "id": sequence_id(),
        "title": cycle(BLOG_TITLES),
        "slug": derived(_blog_slug),
        "author": lambda ctx: "Faaxis Research Team",
        "category": pick(BLOG_CATEGORIES),
        "excerpt": derived(
            lambda r, ctx: (
                f"{r['title']} - Learn about the latest trends and strategies in the "
                "wealth management industry."
            )
        ),
        "date": days_ago(180),
        "published": chance(0.9),
        "featured": chance(0.3),
    },
    CollectionId.NEWS_ARTICLES: {
        "id": sequence_id(),
        "title": cycle(NEWS_HEADLINES),
        "slug": derived(lambda r, ctx: f"{slugify(r['title'])}-{ctx.index}"),
        "source": pick(NEWS_SOURCES),
        "sourceUrl": lambda ctx: None,
        "category": pick(NEWS_CATEGORIES),
        "excerpt": derived(lambda r, ctx: f"{r['title']}. Reported by {r['source']}."),
        "content": derived(
            lambda r, ctx: (
                f"{r['title']}. The move highlights continued competition for "
                "experienced advisors across the industry."
            )
        ),
        "imageUrl": lambda ctx: None,
        "date": days_ago(90),
        "published": chance(0.85),
        "featured": chance(0.2),
    },
    CollectionId.FIRM_DEALS: {
        "id": sequence_id(),
        "firm": cycle(FIRMS),
        "upfrontMin": integer(100, 200),
        "upfrontMax": derived(lambda r, ctx: r["upfrontMin"] + ctx.rng.randint(20, 100)),
        "backendMin": integer(0, 60),
        "backendMax": derived(lambda r, ctx: r["backendMin"] + ctx.rng.randint(10, 80)),
        "totalDealMin": derived(lambda r, ctx: r["upfrontMin"] + r["backendMin"]),
        "totalDealMax": derived(lambda r, ctx: r["upfrontMax"] + r["backendMax"]),
        "notes": derived(_deal_notes),
    },
    CollectionId.FIRM_PARAMETERS: {
        "id": sequence_id(),
        "firm": derived(lambda r, ctx: FIRMS[((ctx.index - 1) // len(PARAMETER_NAMES)) % len(FIRMS)]),
        "paramName": cycle(PARAMETER_NAMES),
        "paramValue": derived(lambda r, ctx: round(ctx.rng.uniform(0.5, 3.5), 2)),
        "notes": derived(lambda r, ctx: f"{r['paramName']} used by the compensation calculator for {r['firm']}."),
    },
    CollectionId.FIRM_PROFILES: {
        "id": sequence_id(),
        "firm": cycle(FIRMS),
        "slug": derived(lambda r, ctx: slugify(r["firm"])),
        "ceo": derived(lambda r, ctx: f"{ctx.rng.choice(FIRST_NAMES)} {ctx.rng.choice(LAST_NAMES)}"),
        "category": pick(FIRM_CATEGORIES),
        "founded": derived(lambda r, ctx: str(ctx.rng.randint(1850, 2015))),
        "headquarters": derived(lambda r, ctx: format_location(*ctx.rng.choice(PLACES))),
        "logoUrl": derived(
            lambda r, ctx: f"https://logos.example.com/{r['slug']}.png" if ctx.rng.random() > 0.3 else ""
        ),
        "bio": derived(
            lambda r, ctx: (
                f"{r['firm']} is a {r['category'].lower()} firm founded in {r['founded']} and "
                f"headquartered in {r['headquarters']}, led by {r['ceo']}."
            )
        ),
    },
    CollectionId.ADMIN_USERS: {
        "id": sequence_id(as_string=False),
        "firstName": pick(FIRST_NAMES),
        "lastName": pick(LAST_NAMES),
        "fullName": derived(lambda r, ctx: f"{r['firstName']} {r['lastName']}"),
        "username": derived(lambda r, ctx: f"{r['firstName']}.{r['lastName']}{ctx.index}".lower()),
        "email": derived(lambda r, ctx: f"{r['username']}@example.com"),
        "_place": pick(PLACES),
        "city": derived(lambda r, ctx: r["_place"][0]),
        "state": derived(lambda r, ctx: r["_place"][1]),
        "isAdmin": derived(lambda r, ctx: ctx.index == 1 or ctx.rng.random() < 0.1),
        "emailVerified": chance(0.7),
        "totpEnabled": chance(0.2),
        "isPremium": chance(0.4),
        "createdAt": days_ago(365, display=False),
    },
}


# ── Generator ───────────────────────────────────────────────────────────────


class SyntheticFallbackGenerator:
    """Produces placeholder snapshots tagged ``source = synthetic``.

    Args:
        seed: Default seed for every generation. None draws a fresh seed per
            call (logged, so a run can be reproduced).
        clock: Returns "now" for date fields. Defaults to UTC wall clock.
    """

    def __init__(
        self,
        seed: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._seed = seed
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def generate_records(
        self,
        collection_id: str | CollectionId,
        count: int | None = None,
        *,
        seed: int | None = None,
    ) -> list[Record]:
        """Generate ``count`` records (default: the collection's fallback count).

        Raises:
            UnknownCollectionError: If the collection is not registered.
            ValueError: If count is negative.
        """
        config = get_collection_config(collection_id)
        template = TEMPLATES[config.collection_id]
        count = config.fallback_count if count is None else count
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")

        effective_seed = seed if seed is not None else self._seed
        if effective_seed is None:
            effective_seed = random.SystemRandom().randrange(2**32)
        rng = random.Random(effective_seed)
        now = self._clock()

        records: list[Record] = []
        for index in range(1, count + 1):
            ctx = GenerationContext(rng=rng, index=index, now=now)
            for field_name, generator in template.items():
                ctx.record[field_name] = generator(ctx)
            records.append({k: v for k, v in ctx.record.items() if not k.startswith("_")})

        missing = set(config.required_fields) - set(records[0]) if records else set()
        if missing:
            raise RuntimeError(
                f"Fallback template for {config.key} is missing fields: {sorted(missing)}"
            )

        logger.info(
            "fallback.generated",
            collection=config.key,
            count=count,
            seed=effective_seed,
        )
        return records

    def generate(
        self,
        collection_id: str | CollectionId,
        count: int | None = None,
        *,
        seed: int | None = None,
    ) -> CollectionSnapshot:
        """Generate a fresh synthetic snapshot for a collection."""
        config = get_collection_config(collection_id)
        records = self.generate_records(config.collection_id, count, seed=seed)
        return CollectionSnapshot(
            collection_id=config.key,
            records=tuple(records),
            freshness=Freshness.FRESH,
            source=SnapshotSource.SYNTHETIC,
        )
