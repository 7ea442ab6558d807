from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..constants import TopicStatus
from ..models.models import User, Vote
from ..schemas.schemas import TallyRead, TopicCreate, TopicRead, TopicUpdate, VoteCast, VoteRead
from ..services import voting as voting_service

router = APIRouter(prefix="/associations/{association_id}/topics", tags=["voting"])


@router.get("", response_model=list[TopicRead])
def list_topics(
    association_id: int,
    status: Optional[TopicStatus] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[TopicRead]:
    return [TopicRead(**item) for item in voting_service.list_topics(db, user, association_id, status)]


@router.post("", response_model=TopicRead, status_code=201)
def create_topic(
    association_id: int,
    payload: TopicCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TopicRead:
    topic = voting_service.create_topic(db, user, association_id, payload)
    return TopicRead(**voting_service.topic_read(topic))


@router.post("/proposals", response_model=TopicRead, status_code=201)
def propose_topic(
    association_id: int,
    payload: TopicCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TopicRead:
    topic = voting_service.propose_topic(db, user, association_id, payload)
    return TopicRead(**voting_service.topic_read(topic))


@router.get("/{topic_id}", response_model=TopicRead)
def get_topic(
    association_id: int,
    topic_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TopicRead:
    return TopicRead(**voting_service.get_topic(db, user, association_id, topic_id))


@router.patch("/{topic_id}", response_model=TopicRead)
def update_topic(
    association_id: int,
    topic_id: int,
    payload: TopicUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TopicRead:
    topic = voting_service.update_topic(db, user, association_id, topic_id, payload)
    return TopicRead(**voting_service.topic_read(topic, voting_service.compute_tally(db, topic)))


@router.post("/{topic_id}/activate", response_model=TopicRead)
def activate_topic(
    association_id: int,
    topic_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TopicRead:
    topic = voting_service.activate_topic(db, user, association_id, topic_id)
    return TopicRead(**voting_service.topic_read(topic, voting_service.compute_tally(db, topic)))


@router.post("/{topic_id}/close", response_model=TopicRead)
def close_topic(
    association_id: int,
    topic_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TopicRead:
    topic = voting_service.close_topic(db, user, association_id, topic_id)
    return TopicRead(**voting_service.topic_read(topic, voting_service.compute_tally(db, topic)))


@router.post("/{topic_id}/votes", response_model=VoteRead, status_code=201)
def cast_vote(
    association_id: int,
    topic_id: int,
    payload: VoteCast,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Vote:
    return voting_service.cast_vote(db, user, association_id, topic_id, payload)


@router.get("/{topic_id}/votes/me", response_model=Optional[VoteRead])
def get_my_vote(
    association_id: int,
    topic_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Optional[Vote]:
    return voting_service.get_my_vote(db, user, association_id, topic_id)


@router.get("/{topic_id}/results", response_model=TallyRead)
def get_results(
    association_id: int,
    topic_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TallyRead:
    return TallyRead(**voting_service.get_results(db, user, association_id, topic_id))
