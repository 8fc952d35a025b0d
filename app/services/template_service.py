from sqlalchemy.orm import Session
from app.models.template import Template
from app.core.exceptions import NotFoundError
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

BUILTIN_TEMPLATES = [
    {
        'name': 'World Capitals',
        'description': 'Capital cities from around the world',
        'category': 'Geography',
        'questions': [
            {'question': 'What is the capital of France?', 'answer': 'Paris'},
            {'question': 'What is the capital of Japan?', 'answer': 'Tokyo'},
            {'question': 'What is the capital of Australia?', 'answer': 'Canberra'},
            {'question': 'What is the capital of Canada?', 'answer': 'Ottawa'},
            {'question': 'What is the capital of Brazil?', 'answer': 'Brasilia'},
        ],
    },
    {
        'name': 'Spanish Basics',
        'description': 'Everyday Spanish words and phrases',
        'category': 'Languages',
        'questions': [
            {'question': 'Hello', 'answer': 'Hola'},
            {'question': 'Thank you', 'answer': 'Gracias'},
            {'question': 'Good morning', 'answer': 'Buenos dias'},
            {'question': 'Goodbye', 'answer': 'Adios'},
            {'question': 'Please', 'answer': 'Por favor'},
        ],
    },
    {
        'name': 'Chemical Symbols',
        'description': 'Common elements of the periodic table',
        'category': 'Science',
        'questions': [
            {'question': 'What is the chemical symbol for gold?', 'answer': 'Au'},
            {'question': 'What is the chemical symbol for sodium?', 'answer': 'Na'},
            {'question': 'What is the chemical symbol for iron?', 'answer': 'Fe'},
            {'question': 'What is the chemical symbol for potassium?', 'answer': 'K'},
        ],
    },
]


class TemplateService:
    """Shared question templates. Not scoped to any principal."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def list_templates(self, db: Session, category: Optional[str] = None) -> List[Template]:
        self.logger.info(f"list_templates: Entry - category: {category}")

        query = db.query(Template)
        if category:
            query = query.filter(Template.category == category)
        templates = query.order_by(Template.created_at.asc()).all()

        self.logger.info(f"list_templates: Success - count: {len(templates)}")
        return templates

    def get_template(self, db: Session, template_id: str) -> Template:
        self.logger.info(f"get_template: Entry - template: {template_id}")

        template = db.query(Template).filter(Template.id == template_id).first()
        if not template:
            self.logger.info(f"get_template: Not found - template: {template_id}")
            raise NotFoundError("Template")

        self.logger.info(f"get_template: Success - template: {template_id}")
        return template

    def create_template(
        self,
        db: Session,
        name: str,
        category: str,
        questions: List[dict],
        description: Optional[str] = None,
    ) -> Template:
        self.logger.info(f"create_template: Entry - name: {name}, category: {category}")

        try:
            template = Template(
                name=name,
                description=description,
                category=category,
                questions=[{'question': q['question'], 'answer': q['answer']} for q in questions],
            )
            db.add(template)
            db.commit()
            db.refresh(template)

            self.logger.info(f"create_template: Success - template: {template.id}")
            return template
        except Exception as e:
            db.rollback()
            self.logger.error(f"create_template: Failure - {e}")
            raise

    def delete_template(self, db: Session, template_id: str) -> None:
        self.logger.info(f"delete_template: Entry - template: {template_id}")

        try:
            template = self.get_template(db, template_id)
            db.delete(template)
            db.commit()
            self.logger.info(f"delete_template: Success - template: {template_id}")
        except NotFoundError:
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"delete_template: Failure - {e}")
            raise

    def seed_templates(self, db: Session) -> int:
        """Insert the built-in templates when the table is empty. Returns how many were added."""
        self.logger.info("seed_templates: Entry")

        if db.query(Template).count() > 0:
            self.logger.info("seed_templates: Skipped - templates already present")
            return 0

        for data in BUILTIN_TEMPLATES:
            self.create_template(
                db,
                name=data['name'],
                category=data['category'],
                questions=data['questions'],
                description=data['description'],
            )

        self.logger.info(f"seed_templates: Success - added: {len(BUILTIN_TEMPLATES)}")
        return len(BUILTIN_TEMPLATES)
