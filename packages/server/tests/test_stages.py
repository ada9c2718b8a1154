"""
Tests for the stage catalog: name validation, custom stages and deletion.
"""

from __future__ import annotations

from datetime import date

import pytest

from app.core.auth import AuthenticatedUser
from app.core.errors import ConflictError, PermissionDenied, ValidationFailure
from app.models.project_stage import ProjectStage
from app.models.stage import Stage
from app.services.connections import connect_stages, list_connections
from app.services.project_stages import attach_stage, update_project_stage
from app.services.projects import mark_project_completed
from app.services.stages import (
    create_stage,
    delete_custom_stage,
    delete_stage,
    get_stage,
    list_stages,
    update_stage,
)
from stagetrack_shared.schemas.common import ProjectStatus, StageStatus
from stagetrack_shared.schemas.project_stages import (
    ConnectionCreate,
    ProjectStageAttach,
    ProjectStageUpdate,
)
from stagetrack_shared.schemas.stages import StageCreate, StageUpdate, validate_stage_fields


def _attach(stage) -> ProjectStageAttach:
    return ProjectStageAttach(stage_id=stage.id, status=StageStatus.ONGOING, start_date=date(2024, 1, 1))


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


class TestValidateStageFields:
    def test_valid(self):
        assert validate_stage_fields("Foundation", "Pour the slab") == (True, "")

    def test_name_too_short_after_trim(self):
        valid, msg = validate_stage_fields("  ab  ", None)
        assert not valid
        assert "at least 3" in msg

    def test_name_too_long(self):
        valid, _ = validate_stage_fields("x" * 101, None)
        assert not valid

    @pytest.mark.parametrize("name", ["<script>alert</script>", "DROP table", "Union Works", "eval step"])
    def test_denylisted_keywords(self, name):
        valid, msg = validate_stage_fields(name, None)
        assert not valid
        assert "invalid" in msg.lower()

    def test_description_too_long(self):
        valid, _ = validate_stage_fields("Foundation", "d" * 1001)
        assert not valid


# ---------------------------------------------------------------------------
# Catalog CRUD
# ---------------------------------------------------------------------------


class TestCatalog:
    async def test_create_global_stage(self, session, owner_auth):
        stage = await create_stage(session, StageCreate(name="  Foundation  "), owner_auth)
        assert stage.name == "Foundation"
        assert not stage.is_custom
        assert stage.project_id is None

    async def test_create_rejects_denylisted_name(self, session, owner_auth):
        with pytest.raises(ValidationFailure):
            await create_stage(session, StageCreate(name="javascript hooks"), owner_auth)

    async def test_plain_user_cannot_create(self, session, member):
        with pytest.raises(PermissionDenied):
            await create_stage(session, StageCreate(name="Foundation"), AuthenticatedUser(member))

    async def test_custom_stage_requires_project(self, session, owner_auth):
        with pytest.raises(ValidationFailure):
            await create_stage(session, StageCreate(name="Site Survey", is_custom=True), owner_auth)

    async def test_custom_stage_requires_project_owner(self, session, project, peer_auth):
        with pytest.raises(PermissionDenied):
            await create_stage(
                session,
                StageCreate(name="Site Survey", is_custom=True, project_id=project.id),
                peer_auth,
            )

    async def test_list_includes_custom_only_for_its_project(self, session, project, owner_auth):
        await create_stage(session, StageCreate(name="Foundation"), owner_auth)
        await create_stage(
            session, StageCreate(name="Site Survey", is_custom=True, project_id=project.id), owner_auth
        )

        global_only = await list_stages(session, owner_auth)
        assert [s.name for s in global_only] == ["Foundation"]

        with_custom = await list_stages(session, owner_auth, project_id=project.id)
        assert sorted(s.name for s in with_custom) == ["Foundation", "Site Survey"]

    async def test_custom_stage_visible_only_to_project_viewers(
        self, session, project, owner_auth, peer_auth, member, outsider
    ):
        custom = await create_stage(
            session, StageCreate(name="Site Survey", is_custom=True, project_id=project.id), owner_auth
        )

        assert (await get_stage(session, custom.id, owner_auth)).id == custom.id
        assert (await get_stage(session, custom.id, AuthenticatedUser(member))).id == custom.id
        for auth in (peer_auth, AuthenticatedUser(outsider)):
            with pytest.raises(PermissionDenied):
                await get_stage(session, custom.id, auth)

    async def test_global_stage_visible_to_anyone(self, session, owner_auth, outsider):
        stage = await create_stage(session, StageCreate(name="Foundation"), owner_auth)
        assert (await get_stage(session, stage.id, AuthenticatedUser(outsider))).name == "Foundation"

    async def test_update_by_non_owner_rejected(self, session, owner_auth, peer_auth):
        stage = await create_stage(session, StageCreate(name="Foundation"), owner_auth)
        with pytest.raises(PermissionDenied):
            await update_stage(session, stage.id, StageUpdate(name="Framing"), peer_auth)

    async def test_update_validates_name(self, session, owner_auth):
        stage = await create_stage(session, StageCreate(name="Foundation"), owner_auth)
        with pytest.raises(ValidationFailure):
            await update_stage(session, stage.id, StageUpdate(name="select all"), owner_auth)

        updated = await update_stage(session, stage.id, StageUpdate(description="Concrete"), owner_auth)
        assert updated.description == "Concrete"
        assert updated.name == "Foundation"


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


class TestDeletion:
    async def test_delete_unused_global_stage(self, session, owner_auth):
        stage = await create_stage(session, StageCreate(name="Foundation"), owner_auth)
        assert await delete_stage(session, stage.id, owner_auth) == []
        assert await session.get(Stage, stage.id) is None

    async def test_delete_global_stage_in_use_conflicts(self, session, project, owner_auth, make_stage):
        stage = await make_stage("Foundation")
        await attach_stage(session, project.id, _attach(stage), owner_auth)
        with pytest.raises(ConflictError):
            await delete_stage(session, stage.id, owner_auth)

    async def test_delete_custom_stage_cascades(self, session, project, owner_auth, make_stage):
        framing = await make_stage("Framing")
        custom = await make_stage("Site Survey", is_custom=True, project_id=project.id)
        kept = await attach_stage(session, project.id, _attach(framing), owner_auth)
        removed = await attach_stage(session, project.id, _attach(custom), owner_auth)
        await connect_stages(
            session, project.id, ConnectionCreate(from_stage_id=removed.id, to_stage_id=kept.id), owner_auth
        )

        affected = await delete_custom_stage(session, project.id, custom.id, owner_auth)

        assert affected == [project.id]
        assert await session.get(Stage, custom.id) is None
        assert await session.get(ProjectStage, removed.id) is None
        assert await session.get(ProjectStage, kept.id) is not None
        assert await list_connections(session, project.id, owner_auth) == []

    async def test_delete_custom_stage_rederives_status(self, session, project, owner_auth, make_stage):
        framing = await make_stage("Framing")
        custom = await make_stage("Site Survey", is_custom=True, project_id=project.id)
        done = await attach_stage(session, project.id, _attach(framing), owner_auth)
        await attach_stage(session, project.id, _attach(custom), owner_auth)
        await update_project_stage(
            session,
            project.id,
            done.id,
            ProjectStageUpdate(status=StageStatus.COMPLETED, completion_date=date(2024, 2, 1)),
            owner_auth,
        )
        assert project.status == ProjectStatus.ONGOING.value

        await delete_custom_stage(session, project.id, custom.id, owner_auth)
        assert project.status == ProjectStatus.COMPLETED.value

    async def test_delete_custom_stage_of_locked_project(self, session, project, owner_auth, make_stage):
        custom = await make_stage("Site Survey", is_custom=True, project_id=project.id)
        await mark_project_completed(session, project.id, owner_auth)
        with pytest.raises(PermissionDenied):
            await delete_custom_stage(session, project.id, custom.id, owner_auth)

    async def test_delete_custom_stage_requires_custom(self, session, project, owner_auth, make_stage):
        stage = await make_stage("Foundation")
        with pytest.raises(ValidationFailure):
            await delete_custom_stage(session, project.id, stage.id, owner_auth)

    async def test_delete_custom_stage_owner_only(
        self, session, project, owner_auth, peer_auth, make_stage
    ):
        custom = await make_stage("Site Survey", is_custom=True, project_id=project.id)
        with pytest.raises(PermissionDenied):
            await delete_custom_stage(session, project.id, custom.id, peer_auth)
