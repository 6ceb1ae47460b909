"""Prediction settlement: evaluate prediction posts and persist PredictionStats.

A post is settled only once its match is finished; before that no
PredictionStats row is written. Re-running settlement overwrites the single
row keyed by ``post``.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from scoreline.predictions.evaluator import UNSUPPORTED_EVENT, evaluate, outcome_label
from scoreline.predictions.legacy import evaluate_events
from scoreline.predictions.rules import OutcomeRule
from scoreline.predictions.scoring import compute_scoring, summarize
from scoreline.store import DuplicateKeyError, Store, StoreError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class SettlementCounters:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# AUTHORIZATION
# =============================================================================

def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == "admin"


def can_settle(user: Optional[dict]) -> bool:
    """System callers (no user) and admins may trigger settlement."""
    return user is None or is_admin(user)


def can_view_result(user: Optional[dict], post: dict, result: Optional[dict]) -> bool:
    """Admins and the author always; everyone else once the result is settled."""
    if is_admin(user):
        return True
    if user is not None and post.get("author_id") is not None and user.get("id") == post.get("author_id"):
        return True
    return bool(result) and result.get("status") == "settled"


# =============================================================================
# LOOKUPS
# =============================================================================

def prediction_target(prediction: dict) -> tuple[Optional[int], Optional[int]]:
    """(match_id, fixture_id) the prediction points at; falls back to the first outcome."""
    match_id = prediction.get("match_id")
    fixture_id = prediction.get("fixture_id")
    if match_id is None and fixture_id is None:
        for outcome in prediction.get("outcomes") or []:
            if not isinstance(outcome, dict):
                continue
            match_id = outcome.get("match_id")
            fixture_id = outcome.get("fixture_id")
            if match_id is not None or fixture_id is not None:
                break
    return match_id, fixture_id


async def resolve_match(store: Store, prediction: dict) -> Optional[dict]:
    match_id, fixture_id = prediction_target(prediction)
    if match_id is not None:
        match = await store.find_one("matches", where={"match_id": {"equals": match_id}})
        if match:
            return match
    if fixture_id is not None:
        return await store.find_one("matches", where={"fixture_id": {"equals": fixture_id}})
    return None


async def load_stats(store: Store, match: dict) -> Optional[dict]:
    return await store.find_one("match_stats", where={"match_id": {"equals": match["match_id"]}})


class _RuleCache:
    """Per-run cache of markets and outcome groups."""

    def __init__(self, store: Store):
        self.store = store
        self.markets: dict[Any, Optional[dict]] = {}
        self.groups: dict[Any, Optional[dict]] = {}

    async def _get(self, cache: dict, collection: str, ref: Any) -> Optional[dict]:
        if isinstance(ref, dict):
            return ref
        if ref is None:
            return None
        if ref not in cache:
            cache[ref] = await self.store.find_one(collection, where={"id": {"equals": ref}})
        return cache[ref]

    async def market(self, ref: Any) -> Optional[dict]:
        return await self._get(self.markets, "markets", ref)

    async def group(self, ref: Any) -> Optional[dict]:
        return await self._get(self.groups, "outcome_groups", ref)


def _find_rule(group: Optional[dict], name: str) -> Optional[OutcomeRule]:
    if not group:
        return None
    for definition in group.get("outcomes") or []:
        if isinstance(definition, dict) and definition.get("name") == name:
            try:
                return OutcomeRule.model_validate(definition)
            except ValidationError as e:
                logger.warning("[SETTLE] Invalid rule '%s' in group %s: %s", name, group.get("id"), e)
                return None
    return None


async def evaluate_outcome(
    cache: _RuleCache,
    outcome: dict,
    match: dict,
    stats: Optional[dict],
) -> dict:
    """Settlement detail for one structured outcome."""
    name = outcome.get("outcome_name") or outcome.get("name") or ""
    value = outcome.get("value")
    detail = {
        "event": outcome_label(name, value),
        "coefficient": float(outcome.get("coefficient") or 0),
        "result": "undecided",
        "reason": UNSUPPORTED_EVENT,
    }

    group = await cache.group(outcome.get("outcome_group"))
    rule = _find_rule(group, name)
    if rule is None:
        return detail

    market = await cache.market(outcome.get("market"))
    stat_path = market.get("stat_path") if market else None

    verdict = evaluate(rule, match, stats, value=value, default_stat=stat_path)
    detail["result"] = verdict.result
    detail["reason"] = verdict.reason
    if verdict.actual is not None:
        detail["actual_value"] = verdict.actual
    if verdict.expected is not None:
        detail["expected_value"] = verdict.expected
    return detail


# =============================================================================
# SETTLEMENT
# =============================================================================

async def calculate_prediction_stats(
    store: Store,
    post: dict,
    cache: Optional[_RuleCache] = None,
) -> Optional[dict]:
    """
    Build the PredictionStats document for one post.

    Returns None when the post is not a prediction, has nothing to evaluate,
    or its match is missing or not finished yet.
    """
    prediction = post.get("prediction")
    if post.get("post_type") != "prediction" or not isinstance(prediction, dict):
        logger.info("[SETTLE] Post %s is not a prediction", post.get("id"))
        return None

    outcomes = [o for o in prediction.get("outcomes") or [] if isinstance(o, dict)]
    events = [e for e in prediction.get("events") or [] if isinstance(e, dict)]
    if not outcomes and not events:
        logger.info("[SETTLE] Post %s has no outcomes", post["id"])
        return None

    match = await resolve_match(store, prediction)
    if match is None:
        logger.info("[SETTLE] Post %s: match not found", post["id"])
        return None
    if match.get("status") != "finished":
        logger.info("[SETTLE] Post %s: match %s not finished (%s)", post["id"], match["match_id"], match.get("status"))
        return None

    stats = await load_stats(store, match)
    cache = cache or _RuleCache(store)

    details = []
    for outcome in outcomes:
        details.append(await evaluate_outcome(cache, outcome, match, stats))
    details.extend(evaluate_events(events, match, stats))

    return {
        "post": post["id"],
        "author": post.get("author_id"),
        "match_id": match["match_id"],
        "fixture_id": match.get("fixture_id"),
        "status": "settled",
        "evaluated_at": _utc_now(),
        "details": details,
        "summary": summarize(details),
        "scoring": compute_scoring(details, prediction, match),
    }


async def save_prediction_stats(store: Store, data: dict) -> str:
    """Upsert by post; returns 'created' or 'updated'."""
    existing = await store.find_one("prediction_stats", where={"post": {"equals": data["post"]}})
    if existing:
        await store.update("prediction_stats", existing["id"], data)
        return "updated"
    try:
        await store.create("prediction_stats", data)
    except DuplicateKeyError:
        # Lost a race with a concurrent settlement of the same post
        existing = await store.find_one("prediction_stats", where={"post": {"equals": data["post"]}})
        if existing is None:
            raise
        await store.update("prediction_stats", existing["id"], data)
        return "updated"
    return "created"


async def settle_post(store: Store, post: dict, cache: Optional[_RuleCache] = None) -> Optional[str]:
    """Settle one post. Returns 'created', 'updated' or None when not settleable yet."""
    data = await calculate_prediction_stats(store, post, cache)
    if data is None:
        return None
    action = await save_prediction_stats(store, data)
    summary = data["summary"]
    logger.info(
        "[SETTLE] Post %s %s: won=%d lost=%d undecided=%d roi=%.3f points=%d",
        post["id"], action, summary["won"], summary["lost"], summary["undecided"],
        summary["roi"], data["scoring"]["points"],
    )
    return action


async def iter_prediction_posts(store: Store, where: Optional[dict] = None):
    """Yield every prediction post, paging through the store."""
    clause = {"post_type": {"equals": "prediction"}}
    if where:
        clause = {"and": [clause, where]}
    page = 1
    while True:
        result = await store.find("posts", where=clause, sort="id", limit=PAGE_SIZE, page=page)
        for post in result.docs:
            yield post
        if not result.has_next_page:
            break
        page += 1


async def settle_posts(store: Store, posts, force: bool = True) -> SettlementCounters:
    """
    Settle an iterable (sync or async) of posts.

    With force=False, posts that already have a settled result are skipped.
    Per-post store failures are counted and do not stop the batch.
    """
    counters = SettlementCounters()
    cache = _RuleCache(store)

    async def _handle(post: dict) -> None:
        counters.processed += 1
        try:
            if not force:
                existing = await store.find_one("prediction_stats", where={"post": {"equals": post["id"]}})
                if existing and existing.get("status") == "settled":
                    counters.skipped += 1
                    return
            action = await settle_post(store, post, cache)
        except StoreError as e:
            logger.error("[SETTLE] Post %s failed: %s", post.get("id"), e)
            counters.errors += 1
            return
        if action == "created":
            counters.created += 1
        elif action == "updated":
            counters.updated += 1
        else:
            counters.skipped += 1

    if hasattr(posts, "__aiter__"):
        async for post in posts:
            await _handle(post)
    else:
        for post in posts:
            await _handle(post)

    logger.info(
        "[SETTLE] Done: processed=%d created=%d updated=%d skipped=%d errors=%d",
        counters.processed, counters.created, counters.updated, counters.skipped, counters.errors,
    )
    return counters


async def settle_all(store: Store, force: bool = False) -> SettlementCounters:
    return await settle_posts(store, iter_prediction_posts(store), force=force)


async def settle_by_match(store: Store, match_id: int) -> SettlementCounters:
    """Settle every prediction that targets the match (by match_id or its fixture_id)."""
    match = await store.find_one("matches", where={"match_id": {"equals": match_id}})
    fixture_id = match.get("fixture_id") if match else None

    async def _matching():
        async for post in iter_prediction_posts(store):
            target_match, target_fixture = prediction_target(post.get("prediction") or {})
            if target_match == match_id or (fixture_id is not None and target_fixture == fixture_id):
                yield post

    return await settle_posts(store, _matching(), force=True)


async def settle_by_post(store: Store, post_id: int) -> SettlementCounters:
    post = await store.find_one("posts", where={"id": {"equals": post_id}})
    if post is None:
        logger.warning("[SETTLE] Post %s not found", post_id)
        return SettlementCounters()
    return await settle_posts(store, [post], force=True)


async def settle_by_user(store: Store, user_id: int) -> SettlementCounters:
    return await settle_posts(
        store, iter_prediction_posts(store, {"author_id": {"equals": user_id}}), force=True,
    )


# =============================================================================
# PER-USER AGGREGATE
# =============================================================================

async def user_aggregate(store: Store, user_id: int) -> dict:
    """Totals over a user's settlement records; ROI is the mean of per-post ROI."""
    result = await store.find("prediction_stats", where={"author": {"equals": user_id}}, limit=None)
    totals = {"total": 0, "won": 0, "lost": 0, "undecided": 0}
    rois = []
    points = 0
    settled = 0

    for row in result.docs:
        if row.get("status") != "settled":
            continue
        settled += 1
        summary = row.get("summary") or {}
        for key in totals:
            totals[key] += int(summary.get(key) or 0)
        rois.append(float(summary.get("roi") or 0))
        points += int((row.get("scoring") or {}).get("points") or 0)

    predictions = await store.count(
        "posts",
        where={"post_type": {"equals": "prediction"}, "author_id": {"equals": user_id}},
    )
    pending = max(0, predictions - settled)

    return {
        "user_id": user_id,
        **totals,
        "hit_rate": totals["won"] / totals["total"] if totals["total"] else 0.0,
        "roi": sum(rois) / len(rois) if rois else 0.0,
        "points": points,
        "settled_predictions": settled,
        "pending_predictions": pending,
    }
