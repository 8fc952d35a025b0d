from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.question import Question
from app.models.template import Template
from app.core.exceptions import FeatureNotAvailableError, NotFoundError, QuotaExceededError
from app.services import tier_policy
from datetime import datetime
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

CREATE_FIELDS = ('question', 'answer', 'category', 'tags', 'duration', 'custom_color')
UPDATE_FIELDS = CREATE_FIELDS + ('times_reviewed', 'last_reviewed', 'performance_score', 'order')


def _clamp_score(score: float) -> float:
    return min(1.0, max(0.0, float(score)))


class QuestionService:
    """Questions scoped by principal id. Rows of other principals are reported as not found."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def list_questions(self, db: Session, principal_id: str) -> List[Question]:
        """All questions for a principal in display order"""
        self.logger.info(f"list_questions: Entry - principal: {principal_id}")

        try:
            questions = db.query(Question).filter(
                Question.user_id == principal_id
            ).order_by(Question.order.asc(), Question.created_at.asc()).all()

            self.logger.info(f"list_questions: Success - principal: {principal_id}, count: {len(questions)}")
            return questions
        except Exception as e:
            self.logger.error(f"list_questions: Failure - {e}")
            raise

    def count_questions(self, db: Session, principal_id: str) -> int:
        return db.query(Question).filter(Question.user_id == principal_id).count()

    def get_question(self, db: Session, question_id: str, principal_id: str) -> Question:
        """Get a question by id, ensuring the principal owns it"""
        self.logger.info(f"get_question: Entry - question: {question_id}, principal: {principal_id}")

        question = db.query(Question).filter(
            Question.id == question_id,
            Question.user_id == principal_id
        ).first()

        if not question:
            self.logger.info(f"get_question: Not found - question: {question_id}")
            raise NotFoundError("Question")

        self.logger.info(f"get_question: Success - question: {question_id}")
        return question

    def create_question(self, db: Session, principal_id: str, tier: str, data: dict) -> Question:
        """Insert a question after checking the tier quota"""
        self.logger.info(f"create_question: Entry - principal: {principal_id}, tier: {tier}")

        try:
            current = self.count_questions(db, principal_id)
            if not tier_policy.check_quota(current, tier):
                limit = tier_policy.limit_for(tier)
                self.logger.info(
                    f"create_question: Quota exceeded - principal: {principal_id}, count: {current}/{limit}")
                raise QuotaExceededError(current, limit, tier_policy.normalize_tier(tier))

            question = Question(
                user_id=principal_id,
                times_reviewed=0,
                performance_score=0.5,
                order=self._next_order(db, principal_id),
                **{k: v for k, v in data.items() if k in CREATE_FIELDS and v is not None},
            )
            if question.tags is None:
                question.tags = []
            db.add(question)
            db.commit()
            db.refresh(question)

            self.logger.info(f"create_question: Success - question: {question.id}")
            return question
        except QuotaExceededError:
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"create_question: Failure - {e}")
            raise

    def update_question(self, db: Session, question_id: str, principal_id: str, updates: dict) -> Question:
        """Merge the given fields into an owned question"""
        self.logger.info(f"update_question: Entry - question: {question_id}, principal: {principal_id}")

        try:
            question = self.get_question(db, question_id, principal_id)

            for field, value in updates.items():
                if field not in UPDATE_FIELDS:
                    continue
                if field == 'performance_score' and value is not None:
                    value = _clamp_score(value)
                if field in ('question', 'answer', 'duration', 'times_reviewed', 'performance_score', 'order') \
                        and value is None:
                    continue
                setattr(question, field, value)

            db.commit()
            db.refresh(question)

            self.logger.info(f"update_question: Success - question: {question_id}")
            return question
        except NotFoundError:
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"update_question: Failure - {e}")
            raise

    def record_review(
        self,
        db: Session,
        question_id: str,
        principal_id: str,
        score: float,
        now: datetime = None,
    ) -> Question:
        """Fold one review score into the running performance mean"""
        self.logger.info(f"record_review: Entry - question: {question_id}, score: {score}")

        try:
            question = self.get_question(db, question_id, principal_id)
            reviewed = question.times_reviewed or 0
            previous = question.performance_score if question.performance_score is not None else 0.5

            question.performance_score = _clamp_score((previous * reviewed + _clamp_score(score)) / (reviewed + 1))
            question.times_reviewed = reviewed + 1
            question.last_reviewed = now or datetime.utcnow()
            db.commit()
            db.refresh(question)

            self.logger.info(
                f"record_review: Success - question: {question_id}, performance: {question.performance_score:.3f}")
            return question
        except NotFoundError:
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"record_review: Failure - {e}")
            raise

    def delete_question(self, db: Session, question_id: str, principal_id: str) -> bool:
        """Delete an owned question. Returns False if nothing was deleted."""
        self.logger.info(f"delete_question: Entry - question: {question_id}, principal: {principal_id}")

        try:
            deleted = db.query(Question).filter(
                Question.id == question_id,
                Question.user_id == principal_id
            ).delete(synchronize_session=False)
            db.commit()

            self.logger.info(f"delete_question: Success - question: {question_id}, deleted: {deleted}")
            return deleted > 0
        except Exception as e:
            db.rollback()
            self.logger.error(f"delete_question: Failure - {e}")
            raise

    def delete_all_questions(self, db: Session, principal_id: str) -> int:
        """Delete every question of a principal and return how many were removed"""
        self.logger.info(f"delete_all_questions: Entry - principal: {principal_id}")

        try:
            count = db.query(Question).filter(
                Question.user_id == principal_id
            ).delete(synchronize_session=False)
            db.commit()

            self.logger.info(f"delete_all_questions: Success - principal: {principal_id}, count: {count}")
            return count
        except Exception as e:
            db.rollback()
            self.logger.error(f"delete_all_questions: Failure - {e}")
            raise

    def reorder_questions(self, db: Session, principal_id: str, question_ids: List[str]) -> int:
        """
        Set order = position for each id in the sequence.
        Ids the principal does not own are skipped. Returns the number of rows reordered.
        """
        self.logger.info(f"reorder_questions: Entry - principal: {principal_id}, ids: {len(question_ids)}")

        try:
            owned = {
                q.id: q for q in db.query(Question).filter(
                    Question.user_id == principal_id,
                    Question.id.in_(question_ids)
                ).all()
            } if question_ids else {}

            updated = 0
            for index, question_id in enumerate(question_ids):
                question = owned.get(question_id)
                if question is None:
                    self.logger.warning(f"reorder_questions: Skipping unknown id - {question_id}")
                    continue
                question.order = index
                updated += 1

            db.commit()
            self.logger.info(f"reorder_questions: Success - principal: {principal_id}, updated: {updated}")
            return updated
        except Exception as e:
            db.rollback()
            self.logger.error(f"reorder_questions: Failure - {e}")
            raise

    def import_template(self, db: Session, principal_id: str, tier: str, template: Template) -> List[Question]:
        """Copy a template's pairs into the principal's questions, all or nothing"""
        self.logger.info(f"import_template: Entry - principal: {principal_id}, template: {template.id}")

        if not tier_policy.has_feature(tier, 'template_import'):
            raise FeatureNotAvailableError('template_import', tier_policy.normalize_tier(tier))

        pairs = [p for p in (template.questions or []) if p.get('question') and p.get('answer')]
        current = self.count_questions(db, principal_id)
        if not tier_policy.check_quota(current, tier, adding=len(pairs)):
            raise QuotaExceededError(current, tier_policy.limit_for(tier), tier_policy.normalize_tier(tier))

        try:
            next_order = self._next_order(db, principal_id)
            created = []
            for offset, pair in enumerate(pairs):
                question = Question(
                    user_id=principal_id,
                    question=pair['question'],
                    answer=pair['answer'],
                    category=template.category,
                    tags=[],
                    times_reviewed=0,
                    performance_score=0.5,
                    order=next_order + offset,
                )
                db.add(question)
                created.append(question)
            db.commit()
            for question in created:
                db.refresh(question)

            self.logger.info(f"import_template: Success - principal: {principal_id}, imported: {len(created)}")
            return created
        except Exception as e:
            db.rollback()
            self.logger.error(f"import_template: Failure - {e}")
            raise

    def _next_order(self, db: Session, principal_id: str) -> int:
        highest: Optional[int] = db.query(func.max(Question.order)).filter(
            Question.user_id == principal_id
        ).scalar()
        return 0 if highest is None else highest + 1
