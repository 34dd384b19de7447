"""Audit trail of proctoring violations reported by quiz clients."""

import json
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlmodel import Session

from assignment_engine.database import get_session
from assignment_engine.deps import get_identity
from assignment_engine.identity import Identity
from assignment_engine.models import ProctoringEvent, utcnow
from assignment_engine.services.submission_service import get_assignment

router = APIRouter()


class ViolationIn(BaseModel):
    kind: str
    violation_count: int = 0
    severity: str = "low"  # low, medium, high
    metadata: Optional[Any] = None


@router.post("/assignments/{assignment_id}/violations")
def log_violation(
    assignment_id: int,
    payload: ViolationIn = Body(...),
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """Record a violation. Grading never reads these rows."""
    get_assignment(session, assignment_id)

    # Convert metadata to JSON string if it's a dict
    metadata_str = None
    if payload.metadata:
        if isinstance(payload.metadata, dict):
            metadata_str = json.dumps(payload.metadata)
        else:
            metadata_str = str(payload.metadata)

    event = ProctoringEvent(
        assignment_id=assignment_id,
        learner_id=identity.uid,
        kind=payload.kind,
        violation_count=payload.violation_count,
        severity=payload.severity,
        event_metadata=metadata_str,
        occurred_at=utcnow(),
    )
    session.add(event)
    session.commit()
    session.refresh(event)

    return {"status": "success", "event_id": event.id}
