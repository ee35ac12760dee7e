"""
Catalog tests — system types, template replacement, seeding.
"""

import pytest

from buildroom.core.exceptions import ConflictError, ForbiddenError, NoChangeError, ValidationError
from buildroom.models import db
from buildroom.models.checklist import ChecklistTemplate
from buildroom.models.system import SystemType
from buildroom.services import catalog_service


class TestSystemTypes:
    def test_create_and_list(self, manager):
        catalog_service.create_system_type({"name": "Docking Station", "code": "Dock"}, manager)
        types = catalog_service.list_system_types()
        assert [t.code for t in types] == ["dock"]

    def test_duplicate_code(self, catalog, manager):
        with pytest.raises(ConflictError):
            catalog_service.create_system_type({"name": "Laptop 2", "code": "laptop"}, manager)

    def test_staff_forbidden(self, staff):
        with pytest.raises(ForbiddenError):
            catalog_service.create_system_type({"name": "Dock", "code": "dock"}, staff)


class TestTemplates:
    def test_new_template_replaces_active_one(self, catalog, manager):
        old = catalog["template"]
        new = catalog_service.create_template({
            "name": "Laptop build v2",
            "system_type_id": catalog["laptop"].id,
            "steps": [
                {"name": "Image", "step_weight": 2},
                {"name": "Encrypt disk", "requires_qa": True, "estimated_minutes": 15},
            ],
        }, manager)
        assert db.session.get(ChecklistTemplate, old.id).is_active is False
        assert db.session.get(SystemType, catalog["laptop"].id).active_template().id == new.id
        assert [s.step_order for s in new.steps] == [1, 2]

    def test_existing_checklists_keep_their_steps(self, catalog, make_order, manager):
        order = make_order()
        checklist = order.systems[0].checklist
        catalog_service.create_template({
            "name": "Laptop build v2", "system_type_id": catalog["laptop"].id,
            "steps": [{"name": "Only step"}],
        }, manager)
        assert [s.name for s in checklist.steps] == ["Image", "Final inspection"]
        fresh = make_order().systems[0].checklist
        assert [s.name for s in fresh.steps] == ["Only step"]

    @pytest.mark.parametrize("steps", [[], [{"description": "no name"}],
                                       [{"name": "x", "step_weight": 0}]])
    def test_malformed_steps(self, catalog, manager, steps):
        with pytest.raises(ValidationError):
            catalog_service.create_template({"name": "Bad", "system_type_id": catalog["laptop"].id,
                                             "steps": steps}, manager)
        assert db.session.get(ChecklistTemplate, catalog["template"].id).is_active is True

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_rejected(self, catalog, manager, name):
        with pytest.raises(ValidationError) as exc:
            catalog_service.create_template({"name": name, "system_type_id": catalog["laptop"].id,
                                             "steps": [{"name": "Image"}]}, manager)
        assert exc.value.details == {"name": "required"}
        assert db.session.get(ChecklistTemplate, catalog["template"].id).is_active is True

    def test_deactivate(self, catalog, make_order, manager):
        catalog_service.deactivate_template(catalog["template"].id, manager)
        assert make_order().systems[0].checklist is None
        with pytest.raises(NoChangeError):
            catalog_service.deactivate_template(catalog["template"].id, manager)

    def test_list_filters(self, catalog, manager):
        catalog_service.create_template({
            "name": "Laptop build v2", "system_type_id": catalog["laptop"].id,
            "steps": [{"name": "Only step"}],
        }, manager)
        assert len(catalog_service.list_templates(system_type_id=catalog["laptop"].id)) == 2
        active = catalog_service.list_templates(active_only=True)
        assert [t.name for t in active] == ["Laptop build v2"]


class TestSeed:
    def test_seed_is_idempotent(self):
        first = catalog_service.seed_default_catalog()
        db.session.commit()
        second = catalog_service.seed_default_catalog()
        assert first == len(catalog_service.DEFAULT_CATALOG)
        assert second == 0
        laptop = SystemType.query.filter_by(code="laptop").one()
        assert laptop.active_template() is not None
