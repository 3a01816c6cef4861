"""Seed the store with demo data."""
from datetime import date, timedelta

from defect_tracker.identity import get_identity_provider
from defect_tracker.kv_store import get_store, init_store
from defect_tracker.repository import RecordRepository
from defect_tracker.schemas import (
    DefectCreate,
    DefectPriority,
    DefectStatus,
    DefectUpdate,
    ProjectCreate,
    SignupRequest,
)
from defect_tracker.use_cases.accounts import signup_use_case, update_user_role_use_case
from defect_tracker.use_cases.defects import create_defect_use_case, update_defect_use_case
from defect_tracker.use_cases.projects import create_project_use_case

USERS = [
    {"email": "admin@demo.local", "password": "admin123", "name": "Администратор", "role": "admin"},
    {"email": "kolchin@demo.local", "password": "kolchin123", "name": "Колчин А.А.", "role": "manager"},
    {"email": "petrov@demo.local", "password": "petrov123", "name": "Петров П.П.", "role": "engineer"},
    {"email": "sidorov@demo.local", "password": "sidorov123", "name": "Сидоров С.С.", "role": "observer"},
]

PROJECTS = [
    {"name": "ЖК Северный", "description": "Жилой комплекс, корпус 1", "offset_days": (-60, 120)},
    {"name": "Бизнес-центр Восток", "description": "Офисное здание", "offset_days": (-30, 200)},
]

# (title, priority, status, project index, due offset in days)
DEFECTS = [
    ("Трещина в стяжке пола", DefectPriority.HIGH, DefectStatus.NEW, 0, -3),
    ("Протечка кровли", DefectPriority.CRITICAL, DefectStatus.IN_PROGRESS, 0, 5),
    ("Неровная кладка", DefectPriority.MEDIUM, DefectStatus.IN_REVIEW, 0, 10),
    ("Сколы на плитке", DefectPriority.LOW, DefectStatus.CLOSED, 1, -10),
    ("Не закреплены перила", DefectPriority.HIGH, DefectStatus.CANCELLED, 1, None),
]


def seed():
    """Seed demo users, projects and defects."""
    store = get_store()
    init_store(store)
    repo = RecordRepository(store)
    provider = get_identity_provider()
    today = date.today()

    identities = {}
    for user in USERS:
        identity = signup_use_case(
            repo=repo,
            provider=provider,
            data=SignupRequest(email=user["email"], password=user["password"], name=user["name"]),
        )
        if user["role"] != "observer":
            update_user_role_use_case(repo=repo, provider=provider, user_id=identity.id, role=user["role"])
        identities[user["role"]] = identity
        print(f"  ✓ {user['name']} ({user['email']} / {user['password']}) - {user['role']}")

    manager = identities["manager"]
    engineer = identities["engineer"]

    projects = []
    for data in PROJECTS:
        start, end = data["offset_days"]
        project = create_project_use_case(
            repo=repo,
            data=ProjectCreate(
                name=data["name"],
                description=data["description"],
                start_date=(today + timedelta(days=start)).isoformat(),
                end_date=(today + timedelta(days=end)).isoformat(),
            ),
            current_identity=manager,
        )
        projects.append(project)
        print(f"  ✓ Проект: {project.name}")

    for title, priority, status, project_index, due_offset in DEFECTS:
        due_date = (today + timedelta(days=due_offset)).isoformat() if due_offset is not None else None
        defect = create_defect_use_case(
            repo=repo,
            data=DefectCreate(
                title=title,
                description=f"{title}. Требуется устранение.",
                priority=priority,
                assignee=engineer.id,
                project_id=projects[project_index].id,
                due_date=due_date,
            ),
            current_identity=engineer,
        )
        if status != DefectStatus.NEW:
            update_defect_use_case(
                repo=repo,
                defect_id=defect.id,
                data=DefectUpdate(status=status),
                current_identity=manager,
            )
        print(f"  ✓ Дефект: {title} [{status.value}]")

    print("\n✅ Demo data seeded")


if __name__ == "__main__":
    seed()
