"""Database models using SQLModel.

Nested documents (venue, season, odds, lineups, rule definitions, ...) are
stored as JSON columns so the store can hand them back as plain dicts.
All timestamps are naive UTC.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class League(SQLModel, table=True):
    """Competition reference record, keyed by the provider competition id."""

    __tablename__ = "leagues"

    id: Optional[int] = Field(default=None, primary_key=True)
    competition_id: int = Field(unique=True, index=True, description="LiveScore competition ID")
    name: str = Field(max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=255)
    country_id: Optional[int] = Field(default=None, index=True)
    country_name: Optional[str] = Field(default=None, max_length=100)
    is_league: bool = Field(default=False)
    is_cup: bool = Field(default=False)
    tier: Optional[int] = Field(default=None)
    has_groups: bool = Field(default=False)
    active: bool = Field(default=True)
    national_teams_only: bool = Field(default=False)
    countries: Optional[list] = Field(default=None, sa_column=Column(JSON))
    federations: Optional[list] = Field(default=None, sa_column=Column(JSON))
    season: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    priority: int = Field(default=999)
    last_sync_at: Optional[datetime] = Field(default=None)


class Match(SQLModel, table=True):
    """Canonical match record synced from the LiveScore history feed."""

    __tablename__ = "matches"

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(unique=True, index=True, description="LiveScore match ID")
    fixture_id: Optional[int] = Field(default=None, index=True)

    date: datetime = Field(index=True, description="Kick-off (UTC)")
    status: str = Field(max_length=20, default="scheduled")
    time: Optional[str] = Field(default=None, max_length=20)
    scheduled: Optional[str] = Field(default=None, max_length=20)
    minute: Optional[int] = Field(default=None)
    period: Optional[str] = Field(default=None, max_length=20)
    added_at: Optional[datetime] = Field(default=None)
    last_changed_at: Optional[datetime] = Field(default=None)

    home_team: str = Field(max_length=255)
    home_team_id: Optional[int] = Field(default=None, index=True)
    home_logo: Optional[str] = Field(default=None, max_length=500)
    home_country_id: Optional[int] = Field(default=None)
    home_stadium: Optional[str] = Field(default=None, max_length=255)
    away_team: str = Field(max_length=255)
    away_team_id: Optional[int] = Field(default=None, index=True)
    away_logo: Optional[str] = Field(default=None, max_length=500)
    away_country_id: Optional[int] = Field(default=None)
    away_stadium: Optional[str] = Field(default=None, max_length=255)

    home_score: Optional[int] = Field(default=None, description="NULL until live/finished")
    away_score: Optional[int] = Field(default=None, description="NULL until live/finished")
    home_score_halftime: Optional[int] = Field(default=None)
    away_score_halftime: Optional[int] = Field(default=None)
    home_score_extra_time: Optional[int] = Field(default=None)
    away_score_extra_time: Optional[int] = Field(default=None)
    home_score_penalties: Optional[int] = Field(default=None)
    away_score_penalties: Optional[int] = Field(default=None)
    scores_raw: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    competition: str = Field(max_length=255, default="Unknown competition")
    competition_id: Optional[int] = Field(default=None, index=True)
    competition_details: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    league_id: Optional[int] = Field(default=None, foreign_key="leagues.id", index=True)
    federation: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    country: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    group_id: Optional[int] = Field(default=None)
    season: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    round: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=255)
    venue: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    referee: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    weather: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    outcomes: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    odds: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    urls: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    last_sync_at: Optional[datetime] = Field(default=None)
    sync_source: str = Field(max_length=20, default="history", description="history, live, fixtures, manual")
    has_stats: bool = Field(default=False)
    priority: int = Field(default=999)
    raw: Optional[dict] = Field(default=None, sa_column=Column(JSON))


class MatchStats(SQLModel, table=True):
    """Per-match statistics, events and lineups (one-to-one with Match)."""

    __tablename__ = "match_stats"

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(unique=True, index=True, description="LiveScore match ID")
    match_ref: Optional[int] = Field(default=None, foreign_key="matches.id", description="Owning match row")

    # Each pair is {"home": number|null, "away": number|null}
    possession: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    shots: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    shots_on_target: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    shots_off_target: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    shots_blocked: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    corners: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    offsides: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    fouls: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    yellow_cards: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    red_cards: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    saves: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    passes: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    passes_accurate: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    pass_accuracy: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    attacks: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    dangerous_attacks: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    events: Optional[list] = Field(default=None, sa_column=Column(JSON))
    lineups: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    additional_stats: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    raw: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    data_quality: str = Field(max_length=20, default="none", description="complete, partial, minimal, none")
    sync_source: str = Field(max_length=20, default="stats", description="stats, events, lineups, manual")
    last_sync_at: Optional[datetime] = Field(default=None)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, max_length=255)
    username: Optional[str] = Field(default=None, max_length=100)
    role: str = Field(max_length=20, default="user", description="'user' or 'admin'")
    email_verification_token: Optional[str] = Field(default=None, max_length=255)
    email_verification_expires: Optional[datetime] = Field(default=None)
    reset_password_token: Optional[str] = Field(default=None, max_length=255)
    reset_password_expiration: Optional[datetime] = Field(default=None)


class Post(SQLModel, table=True):
    """Generic content post; carries a prediction when post_type='prediction'."""

    __tablename__ = "posts"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=255)
    author_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    post_type: str = Field(max_length=20, default="post", index=True)
    prediction: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_utc_now)


class Market(SQLModel, table=True):
    """Betting market; stat_path names the statistic its outcome groups read."""

    __tablename__ = "markets"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    stat_path: Optional[str] = Field(default=None, max_length=50)
    groups: Optional[list] = Field(default=None, sa_column=Column(JSON))


class OutcomeGroup(SQLModel, table=True):
    """Named, reusable set of outcome rule definitions."""

    __tablename__ = "outcome_groups"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    outcomes: Optional[list] = Field(default=None, sa_column=Column(JSON))


class PredictionStats(SQLModel, table=True):
    """Settlement record, one per prediction post."""

    __tablename__ = "prediction_stats"
    __table_args__ = (UniqueConstraint("post", name="uq_prediction_stats_post"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    post: int = Field(foreign_key="posts.id", index=True)
    author: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    match_id: Optional[int] = Field(default=None, index=True)
    fixture_id: Optional[int] = Field(default=None)
    status: str = Field(max_length=20, default="pending", description="pending or settled")
    evaluated_at: Optional[datetime] = Field(default=None)
    details: Optional[list] = Field(default=None, sa_column=Column(JSON))
    summary: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    scoring: Optional[dict] = Field(default=None, sa_column=Column(JSON))


class Comment(SQLModel, table=True):
    __tablename__ = "comments"

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: int = Field(foreign_key="posts.id", index=True)
    author_id: Optional[int] = Field(default=None, foreign_key="users.id")
    content: str = Field(default="")
    upvotes: int = Field(default=0)
    downvotes: int = Field(default=0)
    score: int = Field(default=0)
    created_at: datetime = Field(default_factory=_utc_now)


class CommentVote(SQLModel, table=True):
    __tablename__ = "comment_votes"
    __table_args__ = (UniqueConstraint("comment_id", "user_id", name="uq_comment_vote_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    comment_id: int = Field(foreign_key="comments.id", index=True)
    user_id: int = Field(foreign_key="users.id")
    value: int = Field(description="+1 upvote, -1 downvote")


class SyncProgress(SQLModel, table=True):
    """Resumable sync cursor persisted in the database, one row per job."""

    __tablename__ = "sync_progress"

    id: Optional[int] = Field(default=None, primary_key=True)
    job: str = Field(unique=True, max_length=100)
    state: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=_utc_now)


class JobRun(SQLModel, table=True):
    """Execution record of a batch job or scheduler tick."""

    __tablename__ = "job_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_name: str = Field(max_length=100, index=True)
    status: str = Field(max_length=20, description="ok, error, exhausted, interrupted")
    started_at: datetime
    finished_at: datetime
    duration_ms: int = Field(default=0)
    error_message: Optional[str] = Field(default=None)
    metrics: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_utc_now)
