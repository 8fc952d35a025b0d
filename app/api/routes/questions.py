from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from app.core.middleware import get_principal
from app.core.database import get_db
from app.core.principal import Principal
from app.services.question_service import QuestionService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class QuestionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    duration: int = Field(5, ge=1, le=300)
    custom_color: Optional[str] = Field(None, alias="customColor")


class QuestionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = Field(None, min_length=1)
    answer: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    duration: Optional[int] = Field(None, ge=1, le=300)
    custom_color: Optional[str] = Field(None, alias="customColor")
    times_reviewed: Optional[int] = Field(None, ge=0, alias="timesReviewed")
    performance_score: Optional[float] = Field(None, ge=0, le=1, alias="performanceScore")
    order: Optional[int] = None


class ReorderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_ids: List[str] = Field(..., alias="questionIds")


class ReviewRequest(BaseModel):
    score: float = Field(..., ge=0, le=1)


@router.get("")
@router.get("/")
async def list_questions(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """List the principal's questions in display order"""
    logger.info(f"list_questions: Entry - principal: {principal.id}")

    try:
        questions = QuestionService().list_questions(db, principal.id)
        logger.info(f"list_questions: Success - {len(questions)} questions")
        return [q.to_dict() for q in questions]
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"list_questions: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch questions")


@router.post("", status_code=status.HTTP_201_CREATED)
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_question(
    question_data: QuestionCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Create a question, subject to the tier quota"""
    logger.info(f"create_question: Entry - principal: {principal.id}, tier: {principal.tier}")

    try:
        question = QuestionService().create_question(
            db,
            principal.id,
            principal.tier,
            question_data.model_dump(),
        )
        logger.info(f"create_question: Success - question: {question.id}")
        return question.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"create_question: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to create question")


@router.delete("")
@router.delete("/")
async def delete_all_questions(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Delete every question of the principal"""
    logger.info(f"delete_all_questions: Entry - principal: {principal.id}")

    try:
        count = QuestionService().delete_all_questions(db, principal.id)
        logger.info(f"delete_all_questions: Success - deleted: {count}")
        return {"message": "All questions deleted", "count": count}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"delete_all_questions: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to delete questions")


@router.post("/reorder")
async def reorder_questions(
    reorder_data: ReorderRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Set display order from the given id sequence"""
    logger.info(f"reorder_questions: Entry - principal: {principal.id}")

    try:
        updated = QuestionService().reorder_questions(db, principal.id, reorder_data.question_ids)
        logger.info(f"reorder_questions: Success - updated: {updated}")
        return {"message": "Questions reordered", "updated": updated}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"reorder_questions: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to reorder questions")


@router.get("/{question_id}")
async def get_question(
    question_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"get_question: Entry - principal: {principal.id}, question: {question_id}")

    try:
        question = QuestionService().get_question(db, question_id, principal.id)
        logger.info(f"get_question: Success - question: {question_id}")
        return question.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"get_question: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch question")


@router.patch("/{question_id}")
async def update_question(
    question_id: str,
    question_data: QuestionUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    logger.info(f"update_question: Entry - principal: {principal.id}, question: {question_id}")

    try:
        question = QuestionService().update_question(
            db,
            question_id,
            principal.id,
            question_data.model_dump(exclude_unset=True),
        )
        logger.info(f"update_question: Success - question: {question_id}")
        return question.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"update_question: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to update question")


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(
    question_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Delete a question. Deleting an unknown id is a no-op."""
    logger.info(f"delete_question: Entry - principal: {principal.id}, question: {question_id}")

    try:
        QuestionService().delete_question(db, question_id, principal.id)
        logger.info(f"delete_question: Success - question: {question_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"delete_question: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to delete question")


@router.post("/{question_id}/review")
async def review_question(
    question_id: str,
    review_data: ReviewRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Record one review score for a question"""
    logger.info(f"review_question: Entry - principal: {principal.id}, question: {question_id}")

    try:
        question = QuestionService().record_review(db, question_id, principal.id, review_data.score)
        logger.info(f"review_question: Success - question: {question_id}")
        return question.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"review_question: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to record review")
