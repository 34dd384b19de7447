"""Assignment authoring, lookup and document import."""

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, File, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlmodel import Session

from assignment_engine.database import get_session
from assignment_engine.deps import get_identity, require_reviewer
from assignment_engine.identity import Identity
from assignment_engine.questions import questions_from_json
from assignment_engine.services.assignment_service import build_question, create_assignment
from assignment_engine.services.importer import DOCX_MIME_TYPE, build_template, parse_document
from assignment_engine.services.submission_service import get_assignment

router = APIRouter()


class QuestionIn(BaseModel):
    prompt: str
    kind: Literal["mcq", "text"] = "mcq"
    options: List[str] = Field(default_factory=list)
    correct_option_indices: List[int] = Field(default_factory=list)


class CreateAssignmentIn(BaseModel):
    title: str
    description: str = ""
    kind: Literal["task", "quiz"] = "task"
    total_points: int = 10
    auto_grading: bool = False
    questions: List[QuestionIn] = Field(default_factory=list)
    due_at: Optional[datetime] = None


def _assignment_out(assignment, include_answer_key: bool) -> dict:
    questions = questions_from_json(assignment.questions)
    return {
        "assignment_id": assignment.id,
        "title": assignment.title,
        "description": assignment.description,
        "kind": assignment.kind,
        "total_points": assignment.total_points,
        "auto_grading": assignment.auto_grading,
        "due_at": assignment.due_at,
        "questions": [
            q.to_dict() if include_answer_key else q.to_public_dict() for q in questions
        ],
    }


@router.post("/assignments")
def api_create_assignment(
    payload: CreateAssignmentIn = Body(...),
    reviewer: Identity = Depends(require_reviewer),
    session: Session = Depends(get_session),
):
    questions = [
        build_question(q.prompt, q.kind, q.options, q.correct_option_indices)
        for q in payload.questions
    ]
    assignment = create_assignment(
        session,
        title=payload.title,
        kind=payload.kind,
        total_points=payload.total_points,
        auto_grading=payload.auto_grading,
        questions=questions,
        description=payload.description,
        due_at=payload.due_at,
        created_by=reviewer.uid,
    )
    return _assignment_out(assignment, include_answer_key=True)


@router.get("/assignments/template")
def api_import_template():
    return Response(
        content=build_template(),
        media_type=DOCX_MIME_TYPE,
        headers={"Content-Disposition": "attachment; filename=assignment-import-template.docx"},
    )


@router.post("/assignments/import")
async def api_import_questions(
    file: UploadFile = File(...),
    reviewer: Identity = Depends(require_reviewer),
):
    data = await file.read()
    questions = parse_document(data)
    return {"questions": [q.to_dict() for q in questions]}


@router.get("/assignments/{assignment_id}")
def api_get_assignment(
    assignment_id: int,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    assignment = get_assignment(session, assignment_id)
    return _assignment_out(assignment, include_answer_key=identity.is_reviewer)
