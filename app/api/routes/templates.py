from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import List, Optional
from app.core.middleware import get_current_user, get_principal
from app.core.database import get_db
from app.core.principal import Principal, UserPrincipal
from app.services.question_service import QuestionService
from app.services.template_service import TemplateService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class TemplatePair(BaseModel):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: str = Field(..., min_length=1)
    questions: List[TemplatePair] = Field(default_factory=list)


@router.get("")
@router.get("/")
async def list_templates(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
):
    logger.info(f"list_templates: Entry - category: {category}")

    try:
        templates = TemplateService().list_templates(db, category)
        logger.info(f"list_templates: Success - {len(templates)} templates")
        return [t.to_dict() for t in templates]
    except Exception as e:
        logger.error(f"list_templates: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch templates")


@router.post("", status_code=status.HTTP_201_CREATED)
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_template(
    template_data: TemplateCreate,
    current_user: UserPrincipal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    logger.info(f"create_template: Entry - user: {current_user.id}, name: {template_data.name}")

    try:
        template = TemplateService().create_template(
            db,
            name=template_data.name,
            category=template_data.category,
            questions=[pair.model_dump() for pair in template_data.questions],
            description=template_data.description,
        )
        logger.info(f"create_template: Success - template: {template.id}")
        return template.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"create_template: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to create template")


@router.get("/{template_id}")
async def get_template(
    template_id: str,
    db: Session = Depends(get_db),
):
    logger.info(f"get_template: Entry - template: {template_id}")

    try:
        template = TemplateService().get_template(db, template_id)
        logger.info(f"get_template: Success - template: {template_id}")
        return template.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"get_template: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch template")


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str,
    current_user: UserPrincipal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    logger.info(f"delete_template: Entry - user: {current_user.id}, template: {template_id}")

    try:
        TemplateService().delete_template(db, template_id)
        logger.info(f"delete_template: Success - template: {template_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"delete_template: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to delete template")


@router.post("/{template_id}/import", status_code=status.HTTP_201_CREATED)
async def import_template(
    template_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Copy a template's questions into the principal's list (premium)"""
    logger.info(f"import_template: Entry - principal: {principal.id}, template: {template_id}")

    try:
        template = TemplateService().get_template(db, template_id)
        questions = QuestionService().import_template(db, principal.id, principal.tier, template)
        logger.info(f"import_template: Success - imported: {len(questions)}")
        return {"imported": len(questions), "questions": [q.to_dict() for q in questions]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"import_template: Failure - {e}")
        raise HTTPException(status_code=500, detail="Failed to import template")
