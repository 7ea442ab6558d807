"""Voting topics, ballots and tallies.

Ballots are append-only: a member's first ballot on a topic is final. The
(topic_id, member_id) unique constraint backs the already-voted check when two
first ballots race.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..constants import TopicStatus, VisibilityKind
from ..core.errors import AuthorizationDenied, InvalidStateTransition, NotFound, ValidationFailure
from ..models.models import Meeting, Member, User, Vote, VotingTopic, as_utc, utcnow
from ..schemas.schemas import TopicCreate, TopicUpdate, VoteCast
from .access import (
    get_member_for_user,
    is_admin_membership,
    member_unit_names,
    require_admin,
    require_member_record,
    require_membership,
    visibility_allows,
    visibility_columns,
    visibility_descriptor,
)
from .audit import record_audit_best_effort

logger = logging.getLogger(__name__)

# action -> (allowed source states, target state, rejection message)
TOPIC_TRANSITIONS = {
    "activate": ({TopicStatus.DRAFT}, TopicStatus.ACTIVE, "Only draft topics can be activated"),
    "close": ({TopicStatus.DRAFT, TopicStatus.ACTIVE}, TopicStatus.CLOSED, "Topic is already closed"),
}


@dataclass
class _Viewer:
    user: User
    is_admin: bool
    member: Optional[Member]
    unit_names: list[str]


def _viewer(db: Session, user: User, association_id: int) -> _Viewer:
    membership = require_membership(db, user, association_id)
    is_admin = is_admin_membership(membership)
    member = get_member_for_user(db, association_id, user)
    unit_names = [] if is_admin else member_unit_names(db, member)
    return _Viewer(user, is_admin, member, unit_names)


def _topic_visible(topic: VotingTopic, viewer: _Viewer) -> bool:
    if viewer.is_admin:
        return True
    if topic.status == TopicStatus.DRAFT:
        return topic.created_by_user_id == viewer.user.id
    return visibility_allows(topic.visibility, topic.allowed_units, is_admin=False, unit_names=viewer.unit_names)


def _get_topic(db: Session, association_id: int, topic_id: int) -> VotingTopic:
    topic = db.get(VotingTopic, topic_id)
    if not topic or topic.association_id != association_id:
        raise NotFound("Voting topic not found")
    return topic


def compute_tally(db: Session, topic: VotingTopic) -> dict[str, Any]:
    """Per-option counts plus the number of ballots.

    A ballot naming k options adds one to each of those k counters but only
    one to ``total_votes``, so the option counts can sum past the total.
    """
    vote_counts = {option: 0 for option in topic.options or []}
    ballots = db.query(Vote.selected_options).filter(Vote.topic_id == topic.id).all()
    for (selected,) in ballots:
        for option in selected or []:
            if option in vote_counts:
                vote_counts[option] += 1
    return {"topic_id": topic.id, "vote_counts": vote_counts, "total_votes": len(ballots)}


def topic_read(topic: VotingTopic, tally: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    tally = tally or {"vote_counts": {option: 0 for option in topic.options or []}, "total_votes": 0}
    return {
        "id": topic.id,
        "association_id": topic.association_id,
        "title": topic.title,
        "description": topic.description,
        "options": list(topic.options or []),
        "start_date": topic.start_date,
        "end_date": topic.end_date,
        "status": topic.status,
        "allow_multiple_votes": topic.allow_multiple_votes,
        "visibility": visibility_descriptor(topic.visibility, topic.allowed_units),
        "meeting_id": topic.meeting_id,
        "created_by_user_id": topic.created_by_user_id,
        "created_at": topic.created_at,
        "total_votes": tally["total_votes"],
        "vote_counts": tally["vote_counts"],
    }


def _check_dates(start_date, end_date) -> None:
    if as_utc(end_date) <= as_utc(start_date):
        raise ValidationFailure("End date must be after start date")


def _check_meeting(db: Session, association_id: int, meeting_id: Optional[int]) -> None:
    if meeting_id is None:
        return
    meeting = db.get(Meeting, meeting_id)
    if not meeting or meeting.association_id != association_id:
        raise NotFound("Meeting not found")


def _insert_topic(db: Session, user: User, association_id: int, payload: TopicCreate, action: str) -> VotingTopic:
    _check_dates(payload.start_date, payload.end_date)
    _check_meeting(db, association_id, payload.meeting_id)
    kind, units = visibility_columns(payload.visibility)
    topic = VotingTopic(
        association_id=association_id,
        title=payload.title.strip(),
        description=payload.description,
        options=list(payload.options),
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=TopicStatus.DRAFT,
        allow_multiple_votes=payload.allow_multiple_votes,
        visibility=kind,
        allowed_units=units,
        meeting_id=payload.meeting_id,
        created_by_user_id=user.id,
    )
    db.add(topic)
    db.commit()
    db.refresh(topic)

    member = get_member_for_user(db, association_id, user)
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=member.id if member else None,
        action=action,
        entity_type="voting_topic",
        entity_id=topic.id,
        description=f"{'Proposed' if action == 'topic_proposed' else 'Created'} voting topic {topic.title}",
        metadata={"options": topic.options, "visibility": kind.value, "units": units},
    )
    return topic


def create_topic(db: Session, user: User, association_id: int, payload: TopicCreate) -> VotingTopic:
    require_admin(db, user, association_id)
    return _insert_topic(db, user, association_id, payload, "topic_created")


def propose_topic(db: Session, user: User, association_id: int, payload: TopicCreate) -> VotingTopic:
    """Member-facing path: the draft stays hidden from other members until an admin activates it."""
    require_membership(db, user, association_id)
    require_member_record(db, association_id, user)
    return _insert_topic(db, user, association_id, payload, "topic_proposed")


def update_topic(db: Session, user: User, association_id: int, topic_id: int, payload: TopicUpdate) -> VotingTopic:
    require_admin(db, user, association_id)
    topic = _get_topic(db, association_id, topic_id)
    updates = payload.model_dump(exclude_unset=True)
    for field in ("title", "options", "start_date", "end_date", "allow_multiple_votes", "description"):
        if field in updates and updates[field] is None:
            updates.pop(field)

    # Ballots are checked against the options and the single-select rule at cast time.
    ballot_rules_changed = ("options" in updates and list(updates["options"]) != list(topic.options or [])) or (
        "allow_multiple_votes" in updates and updates["allow_multiple_votes"] != topic.allow_multiple_votes
    )
    if ballot_rules_changed:
        has_votes = db.query(Vote.id).filter(Vote.topic_id == topic.id).first() is not None
        if topic.status != TopicStatus.DRAFT or has_votes:
            raise InvalidStateTransition("Options and vote rules can only change while the topic is a draft")

    _check_dates(updates.get("start_date", topic.start_date), updates.get("end_date", topic.end_date))
    if "meeting_id" in updates:
        _check_meeting(db, association_id, updates["meeting_id"])
    if "visibility" in updates:
        updates.pop("visibility")
        if payload.visibility is not None:
            topic.visibility, topic.allowed_units = visibility_columns(payload.visibility)
    if "title" in updates:
        updates["title"] = updates["title"].strip()
    if "options" in updates:
        updates["options"] = list(updates["options"])

    for field, value in updates.items():
        setattr(topic, field, value)
    topic.updated_at = utcnow()
    db.commit()
    db.refresh(topic)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action="topic_updated",
        entity_type="voting_topic",
        entity_id=topic.id,
        description=f"Updated voting topic {topic.title}",
        metadata={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return topic


def _transition(db: Session, user: User, association_id: int, topic_id: int, action: str) -> VotingTopic:
    require_admin(db, user, association_id)
    topic = _get_topic(db, association_id, topic_id)
    sources, target, message = TOPIC_TRANSITIONS[action]
    if topic.status not in sources:
        raise InvalidStateTransition(message)
    previous = topic.status
    now = utcnow()
    topic.status = target
    if target == TopicStatus.ACTIVE:
        topic.activated_at = now
    elif target == TopicStatus.CLOSED:
        topic.closed_at = now
    topic.updated_at = now
    db.commit()
    db.refresh(topic)
    logger.info("Voting topic %s moved %s -> %s.", topic.id, previous.value, target.value)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        action=f"topic_{target.value}",
        entity_type="voting_topic",
        entity_id=topic.id,
        description=f"Voting topic {topic.title} is now {target.value}",
        metadata={"from": previous.value, "to": target.value},
    )
    return topic


def activate_topic(db: Session, user: User, association_id: int, topic_id: int) -> VotingTopic:
    return _transition(db, user, association_id, topic_id, "activate")


def close_topic(db: Session, user: User, association_id: int, topic_id: int) -> VotingTopic:
    return _transition(db, user, association_id, topic_id, "close")


def list_topics(
    db: Session,
    user: User,
    association_id: int,
    status: Optional[TopicStatus] = None,
) -> list[dict[str, Any]]:
    viewer = _viewer(db, user, association_id)
    query = db.query(VotingTopic).filter(VotingTopic.association_id == association_id)
    if status:
        query = query.filter(VotingTopic.status == status)
    topics = query.order_by(VotingTopic.created_at.desc(), VotingTopic.id.desc()).all()
    return [topic_read(topic, compute_tally(db, topic)) for topic in topics if _topic_visible(topic, viewer)]


def get_topic(db: Session, user: User, association_id: int, topic_id: int) -> dict[str, Any]:
    viewer = _viewer(db, user, association_id)
    topic = _get_topic(db, association_id, topic_id)
    if not _topic_visible(topic, viewer):
        raise AuthorizationDenied("Access denied")
    return topic_read(topic, compute_tally(db, topic))


def cast_vote(db: Session, user: User, association_id: int, topic_id: int, payload: VoteCast) -> Vote:
    require_membership(db, user, association_id)
    topic = _get_topic(db, association_id, topic_id)
    member = require_member_record(db, association_id, user)

    viewer = _viewer(db, user, association_id)
    if not viewer.is_admin and not visibility_allows(
        topic.visibility, topic.allowed_units, is_admin=False, unit_names=viewer.unit_names
    ):
        raise AuthorizationDenied("You are not eligible to vote on this topic")

    if topic.status != TopicStatus.ACTIVE:
        raise InvalidStateTransition("Voting is not currently active for this topic")
    if utcnow() > as_utc(topic.end_date):
        raise InvalidStateTransition("Voting period has ended")

    already_voted = (
        db.query(Vote.id).filter(Vote.topic_id == topic.id, Vote.member_id == member.id).first()
    )
    if already_voted:
        raise ValidationFailure("You have already voted on this topic")

    selected = list(payload.selected_options)
    if not selected:
        raise ValidationFailure("Select at least one option")
    if not topic.allow_multiple_votes and len(selected) != 1:
        raise ValidationFailure("Multiple votes not allowed for this topic")
    if len(set(selected)) != len(selected):
        raise ValidationFailure("Duplicate options are not allowed")
    invalid = [option for option in selected if option not in (topic.options or [])]
    if invalid:
        raise ValidationFailure(f"Invalid options: {', '.join(invalid)}")

    vote = Vote(
        association_id=association_id,
        topic_id=topic.id,
        member_id=member.id,
        selected_options=selected,
        voted_at=utcnow(),
    )
    db.add(vote)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationFailure("You have already voted on this topic")
    db.refresh(vote)

    units = member_unit_names(db, member)
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=member.id,
        action="vote_cast",
        entity_type="voting_topic",
        entity_id=topic.id,
        description=f"Voted on {topic.title}",
        metadata={"topic_title": topic.title, "selected_options": selected, "units": units},
    )
    return vote


def get_my_vote(db: Session, user: User, association_id: int, topic_id: int) -> Optional[Vote]:
    require_membership(db, user, association_id)
    topic = _get_topic(db, association_id, topic_id)
    member = get_member_for_user(db, association_id, user)
    if member is None:
        return None
    return db.query(Vote).filter(Vote.topic_id == topic.id, Vote.member_id == member.id).first()


def get_results(db: Session, user: User, association_id: int, topic_id: int) -> dict[str, Any]:
    viewer = _viewer(db, user, association_id)
    topic = _get_topic(db, association_id, topic_id)
    if not viewer.is_admin and topic.visibility == VisibilityKind.ADMIN:
        raise AuthorizationDenied("Access denied")
    if not _topic_visible(topic, viewer):
        raise AuthorizationDenied("Access denied")
    return compute_tally(db, topic)
