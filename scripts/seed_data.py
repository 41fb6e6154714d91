#!/usr/bin/env python3
"""
Seed Data Script for Sprint Backlog

Creates realistic test data for development:
- 3 Users
- 1 Project with 2 Epics, 4 Features and 8 Stories
- Tasks with hours, costs and a mix of statuses
- Worklogs for the dashboard activity feed
- 2 Sprints (one active, one planned) holding ordered stories

Usage:
    python scripts/seed_data.py              # Add seed data
    python scripts/seed_data.py --clear      # Clear all data first
"""
import asyncio
import sys
from datetime import date, timedelta
from decimal import Decimal

from dotenv import load_dotenv
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

load_dotenv()

from sprint_backlog.database import async_session, create_tables, engine
from sprint_backlog.models.user import User
from sprint_backlog.models.project import Project, Epic, Feature
from sprint_backlog.models.backlog import Story, Task
from sprint_backlog.models.sprint import Sprint, SprintStatus, SprintStory
from sprint_backlog.models.worklog import Worklog
from sprint_backlog.services.sprint_service import SprintService


# ==================== DATA DEFINITIONS ====================

USERS_DATA = [
    {"email": "carol.po@company.com", "display_name": "Carol Williams"},
    {"email": "emma.dev@company.com", "display_name": "Emma Rodriguez"},
    {"email": "frank.qa@company.com", "display_name": "Frank Smith"},
]

DEV_RATE = Decimal("60.00")
TEST_RATE = Decimal("45.00")

# epic -> features -> stories -> tasks (title, status, dev hours, test hours)
BACKLOG_DATA = [
    {
        "title": "Customer Accounts",
        "description": "Everything a customer needs to sign up and manage their account",
        "priority": 1,
        "estimated_points": 21,
        "features": [
            {
                "title": "Authentication",
                "priority": 1,
                "stories": [
                    {
                        "title": "Login with email and password",
                        "story_points": 5,
                        "acceptance_criteria": [
                            "Users can log in with email and password",
                            "Invalid credentials show an error",
                        ],
                        "tasks": [
                            ("Login API endpoint", "done", 6, 2),
                            ("Login form", "done", 4, 2),
                        ],
                    },
                    {
                        "title": "Password reset flow",
                        "story_points": 3,
                        "acceptance_criteria": ["Reset link is valid for one hour"],
                        "tasks": [
                            ("Reset token storage", "done", 3, 1),
                            ("Reset email template", "in_progress", 2, 1),
                        ],
                    },
                ],
            },
            {
                "title": "Profile",
                "priority": 2,
                "stories": [
                    {
                        "title": "Edit profile details",
                        "story_points": 3,
                        "acceptance_criteria": ["Name and avatar can be changed"],
                        "tasks": [("Profile form", "todo", 4, 2)],
                    },
                    {
                        "title": "Delete account",
                        "story_points": 2,
                        "acceptance_criteria": [],
                        "tasks": [],
                    },
                ],
            },
        ],
    },
    {
        "title": "Checkout",
        "description": "Paying for an order",
        "priority": 2,
        "estimated_points": 18,
        "features": [
            {
                "title": "Payments",
                "priority": 1,
                "stories": [
                    {
                        "title": "Pay by credit card",
                        "story_points": 8,
                        "acceptance_criteria": ["Visa and Mastercard are accepted"],
                        "tasks": [
                            ("Payment provider client", "in-progress", 10, 4),
                            ("Card form", "todo", 6, 3),
                        ],
                    },
                    {
                        "title": "Order confirmation email",
                        "story_points": 2,
                        "acceptance_criteria": ["Email lists every order line"],
                        "tasks": [("Confirmation template", "completed", 2, 1)],
                    },
                ],
            },
            {
                "title": "Cart",
                "priority": 2,
                "stories": [
                    {
                        "title": "Update item quantity",
                        "story_points": 3,
                        "acceptance_criteria": ["Totals refresh after each change"],
                        "tasks": [("Quantity stepper", "todo", 3, 1)],
                    },
                    {
                        "title": "Save cart for later",
                        "story_points": None,
                        "acceptance_criteria": [],
                        "tasks": [],
                    },
                ],
            },
        ],
    },
]


# ==================== SEED FUNCTIONS ====================

async def clear_all_data(session: AsyncSession):
    """Clear all data from the database"""
    print("Clearing existing data...")

    # Delete in correct order (respecting foreign keys)
    await session.execute(delete(Worklog))
    await session.execute(delete(SprintStory))
    await session.execute(delete(Task))
    await session.execute(delete(Sprint))
    await session.execute(delete(Story))
    await session.execute(delete(Feature))
    await session.execute(delete(Epic))
    await session.execute(delete(Project))
    await session.execute(delete(User))

    await session.commit()
    print("All data cleared")


async def create_users(session: AsyncSession):
    """Create users"""
    print("\nCreating users...")

    users_map = {}
    for user_data in USERS_DATA:
        user = User(
            email=user_data["email"],
            display_name=user_data["display_name"],
            is_active=True
        )
        session.add(user)
        users_map[user_data["email"]] = user
        print(f"  Created: {user.display_name} ({user.email})")

    await session.commit()
    return users_map


async def create_backlog(session: AsyncSession, users_map):
    """Create the project with its epic / feature / story / task tree"""
    print("\nCreating project backlog...")

    project = Project(
        name="Web Shop",
        description="Customer-facing online shop",
        summary="Accounts and checkout for the first public release"
    )
    session.add(project)
    await session.flush()

    developer = users_map["emma.dev@company.com"]
    stories = []
    tasks = []

    for epic_data in BACKLOG_DATA:
        epic = Epic(
            title=epic_data["title"],
            description=epic_data["description"],
            priority=epic_data["priority"],
            estimated_points=epic_data["estimated_points"],
            project_id=project.id
        )
        session.add(epic)
        await session.flush()

        for feature_data in epic_data["features"]:
            feature = Feature(
                title=feature_data["title"],
                priority=feature_data["priority"],
                epic_id=epic.id
            )
            session.add(feature)
            await session.flush()

            for story_data in feature_data["stories"]:
                dev_total = sum(Decimal(t[2]) for t in story_data["tasks"])
                test_total = sum(Decimal(t[3]) for t in story_data["tasks"])
                story = Story(
                    title=story_data["title"],
                    acceptance_criteria=story_data["acceptance_criteria"],
                    story_points=story_data["story_points"],
                    estimated_dev_hours=dev_total or None,
                    estimated_test_hours=test_total or None,
                    feature_id=feature.id
                )
                session.add(story)
                await session.flush()
                stories.append(story)

                for title, status, dev_hours, test_hours in story_data["tasks"]:
                    task = Task(
                        title=title,
                        status=status,
                        dev_hours=Decimal(dev_hours),
                        test_hours=Decimal(test_hours),
                        cost_dev=Decimal(dev_hours) * DEV_RATE,
                        cost_test=Decimal(test_hours) * TEST_RATE,
                        story_id=story.id,
                        assignee_id=developer.id
                    )
                    session.add(task)
                    tasks.append(task)

        print(f"  Created epic: {epic.title}")

    await session.commit()
    print(f"  Created {len(stories)} stories and {len(tasks)} tasks")
    return project, stories, tasks


async def create_worklogs(session: AsyncSession, tasks, users_map):
    """Log hours against finished and running tasks"""
    print("\nCreating worklogs...")

    today = date.today()
    count = 0
    for offset, task in enumerate(t for t in tasks if t.status != "todo"):
        session.add(
            Worklog(
                date=today - timedelta(days=offset),
                hours=task.dev_hours,
                description=f"Worked on {task.title}",
                task_id=task.id,
                user_id=users_map["emma.dev@company.com"].id
            )
        )
        count += 1

    await session.commit()
    print(f"  Created {count} worklogs")


async def create_sprints(session: AsyncSession, project, stories):
    """Create an active and a planned sprint through the sprint service"""
    print("\nCreating sprints...")

    sprint_service = SprintService(session)
    today = date.today()

    active = await sprint_service.create_sprint(
        project_id=project.id,
        name="Sprint 1",
        start_date=today - timedelta(days=3),
        end_date=today + timedelta(days=11),
        story_ids=[stories[0].id, stories[1].id, stories[4].id]
    )
    await sprint_service.update_sprint_status(active.id, SprintStatus.ACTIVE)
    print(f"  Created: {active.name} with {len(active.stories)} stories")

    planned = await sprint_service.create_sprint(
        project_id=project.id,
        name="Sprint 2",
        start_date=today + timedelta(days=11),
        end_date=today + timedelta(days=25),
        story_ids=[stories[5].id, stories[2].id]
    )
    print(f"  Created: {planned.name} with {len(planned.stories)} stories")


# ==================== MAIN ====================

async def seed_database(clear_first: bool = False):
    """Main seed function"""
    print("=" * 60)
    print("Sprint Backlog - Database Seeding")
    print("=" * 60)

    await create_tables()

    async with async_session() as session:
        if clear_first:
            await clear_all_data(session)

        users_map = await create_users(session)
        project, stories, tasks = await create_backlog(session, users_map)
        await create_worklogs(session, tasks, users_map)
        await create_sprints(session, project, stories)

    await engine.dispose()

    print("\n" + "=" * 60)
    print("Database seeding complete!")
    print(f"Project id: {project.id}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(seed_database(clear_first="--clear" in sys.argv))
