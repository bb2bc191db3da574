"""
Initial data: system roles, reference data and the standard approval routes

Every function is idempotent so seeding can run on each start.
"""

import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import SecurityUtils
from app.models.reference import Reference, ReferenceType
from app.models.user import Role, RoleCode, User
from app.models.workflow import (
    WorkflowDefinition,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepType,
)

logger = logging.getLogger(__name__)

SYSTEM_ROLES = [
    (RoleCode.ADMINISTRATOR, "Администратор", "Полный доступ ко всем функциям системы"),
    (RoleCode.GENERAL_DIRECTOR, "Генеральный директор", "Окончательное согласование договоров"),
    (RoleCode.CHIEF_LAWYER, "Главный юрист", "Юридическая экспертиза и согласование договоров"),
    (RoleCode.DEPARTMENT_HEAD, "Руководитель отдела", "Согласование договоров своего отдела"),
    (RoleCode.INITIATOR_MANAGER, "Руководитель инициатора", "Первичное согласование договоров"),
    (RoleCode.INITIATOR, "Инициатор", "Создание договоров и отправка на согласование"),
    (RoleCode.OFFICE_MANAGER, "Офис-менеджер", "Регистрация и хранение подписанных договоров"),
]

COUNTERPARTIES = [
    ("CLIENT_001", 'ООО "Ромашка"', "Крупный поставщик офисной техники и расходных материалов", None),
    ("CLIENT_002", 'ООО "Василек"', "IT-компания, разработчик программного обеспечения", None),
    ("CLIENT_003", "ИП Петров И.И.", "Индивидуальный предприниматель, консалтинговые услуги", None),
    ("CLIENT_004", 'АО "Гвоздика"', "Производственная компания", None),
    ("CLIENT_005", 'ООО "Незабудка"', "Логистические услуги", None),
    ("CLIENT_GROUP_A", 'Группа компаний "Прогресс"', "Холдинговая компания", None),
    ("CLIENT_SUB_A1", 'ООО "Прогресс-Строй"', "Строительное подразделение холдинга", "CLIENT_GROUP_A"),
    ("CLIENT_SUB_A2", 'ООО "Прогресс-Трейд"', "Торговое подразделение холдинга", "CLIENT_GROUP_A"),
]

REFERENCE_DATA = {
    ReferenceType.CONTRACT_TYPE: [
        ("SERVICE", "Договор оказания услуг", "Основной тип договоров на услуги"),
        ("SUPPLY", "Договор поставки", "Поставка товаров и оборудования"),
        ("LEASE", "Договор аренды", "Аренда помещений и оборудования"),
        ("WORK", "Договор подряда", "Выполнение работ"),
        ("LICENSE", "Лицензионный договор", "Предоставление прав на использование"),
        ("CONFIDENTIAL", "Соглашение о конфиденциальности", "NDA"),
        ("PARTNERSHIP", "Договор о партнерстве", "Сотрудничество между компаниями"),
    ],
    ReferenceType.DEPARTMENT: [
        ("IT", "IT отдел", "Информационные технологии"),
        ("HR", "Отдел кадров", "Управление персоналом"),
        ("FIN", "Финансовый отдел", "Финансы и бухгалтерия"),
        ("LEGAL", "Юридический отдел", "Правовое обеспечение"),
        ("SALES", "Отдел продаж", "Продажи и маркетинг"),
        ("PROCUREMENT", "Отдел закупок", "Закупки и логистика"),
    ],
    ReferenceType.DOCUMENT_CATEGORY: [
        ("CONTRACT", "Договор", "Основной договор"),
        ("ANNEX", "Приложение к договору", "Дополнительное соглашение"),
        ("SPECIFICATION", "Спецификация", "Техническая спецификация"),
        ("ACT", "Акт выполненных работ", "Акт сдачи-приемки"),
    ],
    ReferenceType.APPROVAL_REASON: [
        ("STANDARD", "Стандартное согласование", "Обычный порядок согласования"),
        ("URGENT", "Срочное согласование", "Требуется срочное рассмотрение"),
        ("HIGH_VALUE", "Высокая стоимость", "Согласование крупной суммы"),
    ],
    ReferenceType.REJECTION_REASON: [
        ("INCOMPLETE", "Неполный комплект документов", "Отсутствуют необходимые документы"),
        ("FINANCIAL_RISK", "Финансовые риски", "Неблагоприятные финансовые условия"),
        ("LEGAL_RISK", "Юридические риски", "Правовые риски и нарушения"),
        ("BUDGET_EXCEEDED", "Превышение бюджета", "Сумма превышает бюджетные ограничения"),
    ],
}

# (name, description, is_default, conditions, [(step name, type, role, due days, required)])
WORKFLOWS = [
    (
        "Стандартное согласование",
        "Стандартный маршрут согласования договоров",
        True,
        None,
        [
            ("Согласование руководителем инициатора", WorkflowStepType.APPROVAL, RoleCode.INITIATOR_MANAGER, 3, True),
            ("Юридическая экспертиза", WorkflowStepType.APPROVAL, RoleCode.CHIEF_LAWYER, 5, True),
            ("Согласование руководителем отдела", WorkflowStepType.APPROVAL, RoleCode.DEPARTMENT_HEAD, 2, True),
            ("Утверждение генеральным директором", WorkflowStepType.APPROVAL, RoleCode.GENERAL_DIRECTOR, 3, True),
            ("Регистрация договора", WorkflowStepType.NOTIFICATION, RoleCode.OFFICE_MANAGER, None, False),
        ],
    ),
    (
        "Упрощенное согласование",
        "Для договоров на сумму до 100 000",
        False,
        {"maxAmount": 100000},
        [
            ("Согласование руководителем инициатора", WorkflowStepType.APPROVAL, RoleCode.INITIATOR_MANAGER, 1, True),
            ("Проверка юристом", WorkflowStepType.REVIEW, RoleCode.CHIEF_LAWYER, 2, True),
        ],
    ),
    (
        "Расширенное согласование",
        "Для договоров на сумму от 500 000",
        False,
        {"minAmount": 500000},
        [
            ("Предварительная проверка", WorkflowStepType.REVIEW, RoleCode.INITIATOR_MANAGER, 2, True),
            ("Согласование руководителем отдела", WorkflowStepType.APPROVAL, RoleCode.DEPARTMENT_HEAD, 3, True),
            ("Юридическая экспертиза", WorkflowStepType.APPROVAL, RoleCode.CHIEF_LAWYER, 5, True),
            ("Утверждение генеральным директором", WorkflowStepType.APPROVAL, RoleCode.GENERAL_DIRECTOR, 3, True),
            ("Регистрация договора", WorkflowStepType.NOTIFICATION, RoleCode.OFFICE_MANAGER, None, False),
        ],
    ),
]


def seed_roles(db: Session) -> int:
    created = 0
    for code, name, description in SYSTEM_ROLES:
        if db.query(Role).filter(Role.code == code.value).first():
            continue
        db.add(Role(code=code.value, name=name, description=description, is_system=True))
        created += 1
    db.flush()
    return created


def seed_references(db: Session) -> int:
    created = 0
    existing = {code for (code,) in db.query(Reference.code).all()}

    for index, (code, name, description, parent_code) in enumerate(COUNTERPARTIES):
        if code in existing:
            continue
        db.add(
            Reference(
                type=ReferenceType.COUNTERPARTY,
                code=code,
                name=name,
                description=description,
                sort_order=index,
                parent_code=parent_code,
            )
        )
        created += 1

    for reference_type, entries in REFERENCE_DATA.items():
        for index, (code, name, description) in enumerate(entries):
            if code in existing:
                continue
            db.add(
                Reference(
                    type=reference_type,
                    code=code,
                    name=name,
                    description=description,
                    sort_order=index,
                )
            )
            created += 1
    db.flush()
    return created


def seed_workflows(db: Session) -> int:
    if db.query(WorkflowDefinition).count():
        return 0

    roles = {role.code: role for role in db.query(Role).all()}
    for name, description, is_default, conditions, steps in WORKFLOWS:
        workflow = WorkflowDefinition(
            name=name,
            description=description,
            status=WorkflowStatus.ACTIVE,
            is_default=is_default,
            conditions=conditions,
        )
        workflow.steps = [
            WorkflowStep(
                name=step_name,
                type=step_type,
                order=order,
                role_id=roles[role_code.value].id,
                due_days=due_days,
                is_required=required,
            )
            for order, (step_name, step_type, role_code, due_days, required) in enumerate(
                steps, start=1
            )
        ]
        db.add(workflow)
    db.flush()
    return len(WORKFLOWS)


def seed_admin(db: Session) -> bool:
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return False
    email = settings.ADMIN_EMAIL.lower()
    if db.query(User).filter(User.email == email).first():
        return False

    role = db.query(Role).filter(Role.code == RoleCode.ADMINISTRATOR.value).first()
    db.add(
        User(
            email=email,
            name="Administrator",
            hashed_password=SecurityUtils.get_password_hash(settings.ADMIN_PASSWORD),
            role_id=role.id if role else None,
            is_active=True,
        )
    )
    db.flush()
    return True


def seed_initial_data(db: Session):
    try:
        roles = seed_roles(db)
        references = seed_references(db)
        workflows = seed_workflows(db)
        admin = seed_admin(db)
        db.commit()
        logger.info(
            f"Seed complete: {roles} roles, {references} references, "
            f"{workflows} workflows, admin created: {admin}"
        )
    except Exception as e:
        logger.error(f"Error seeding initial data: {str(e)}")
        db.rollback()
        raise
