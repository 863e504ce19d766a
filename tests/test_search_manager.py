import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from caregate.database import init_schema
from caregate.errors import SearchExecutionError, UnknownTableError
from caregate.modules import ModuleInfo, ModuleRegistry
from caregate.modules.models import Module
from caregate.search import (
    SchemaCatalog,
    SearchConfig,
    SearchConfigManager,
    SearchFieldDetector,
    SortOrder,
)


def run(coro):
    return asyncio.run(coro)


async def _engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_schema(engine)
    return engine


def test_heuristic_fields():
    assert SearchFieldDetector.detect_searchable_fields("facilities") == [
        "name",
        "address",
        "email",
        "phone",
    ]
    assert SearchFieldDetector.detect_searchable_fields("anything_else") == [
        "name",
        "description",
        "email",
    ]


def test_heuristic_returns_a_copy():
    fields = SearchFieldDetector.detect_searchable_fields("roles")
    fields.append("mutated")
    assert "mutated" not in SearchFieldDetector.detect_searchable_fields("roles")


def test_catalog_detection_uses_live_columns():
    async def scenario():
        engine = await _engine()
        try:
            detector = SearchFieldDetector(SchemaCatalog(engine))
            facilities = await detector.detect_from_catalog("facilities")
            modules = await detector.detect_from_catalog("modules")
            profiles = await detector.detect_from_catalog("profiles")
            with pytest.raises(UnknownTableError):
                await detector.detect_from_catalog("no_such_table")
            return facilities, modules, profiles
        finally:
            await engine.dispose()

    facilities, modules, profiles = run(scenario())
    assert facilities == ["name", "address", "email", "phone"]
    assert modules == ["name", "description"]
    assert profiles == ["first_name", "last_name", "email", "phone"]


def test_detector_without_catalog_falls_back_to_heuristic():
    detector = SearchFieldDetector()
    assert run(detector.detect_from_catalog("facilities")) == [
        "name",
        "address",
        "email",
        "phone",
    ]


def test_auto_detect_builds_default_configs_and_skips_unknown_tables():
    async def scenario():
        engine = await _engine()
        try:
            modules = ModuleRegistry(
                modules=[
                    ModuleInfo("Facilities", "facilities"),
                    ModuleInfo("Roles", "roles"),
                    ModuleInfo("Ghost", "ghost_table"),
                ]
            )
            manager = SearchConfigManager(
                modules, SearchFieldDetector(SchemaCatalog(engine)), default_limit=25
            )
            stored = await manager.auto_detect_search_capabilities()
            return manager, stored
        finally:
            await engine.dispose()

    manager, stored = run(scenario())
    assert stored == 2
    config = manager.get_config("facilities")
    assert config.searchable_fields == ["name", "address", "email", "phone"]
    assert config.sort_by == "created_at"
    assert config.sort_order == SortOrder.DESC
    assert config.limit == 25
    assert config.full_text_search is True
    assert manager.get_config("ghost_table") is None


def test_set_config_replaces_whole_config():
    manager = SearchConfigManager(ModuleRegistry())
    manager.set_config(SearchConfig(table_name="roles", searchable_fields=["name"], limit=10))
    manager.set_config(SearchConfig(table_name="roles"))
    config = manager.get_config("roles")
    assert config.searchable_fields == []
    assert config.limit == 50
    assert len(manager.list_configs()) == 1


def test_module_registry_reads_database_rows():
    async def scenario():
        engine = await _engine()
        sessions = async_sessionmaker(engine, expire_on_commit=False)
        try:
            async with sessions() as session:
                session.add_all(
                    [
                        Module(name="Billing", table_name="invoices"),
                        Module(name="Retired", table_name="old", is_active=False),
                        Module(name="Roles", table_name="roles_v2"),
                    ]
                )
                await session.commit()
            registry = ModuleRegistry(
                session_factory=sessions, modules=[ModuleInfo("Roles", "roles")]
            )
            return await registry.list_modules()
        finally:
            await engine.dispose()

    listed = run(scenario())
    assert [(m.name, m.table_name) for m in listed] == [
        ("Roles", "roles"),
        ("Billing", "invoices"),
    ]


def test_scheduled_auto_detect_runs_once_in_background():
    calls = []

    class Recording(SearchConfigManager):
        async def auto_detect_search_capabilities(self):
            calls.append("run")
            return 0

    async def scenario():
        manager = Recording(ModuleRegistry())
        task = manager.schedule_auto_detect(0.01)
        await task
        await manager.stop()

    run(scenario())
    assert calls == ["run"]


def test_scheduled_auto_detect_logs_failures(caplog):
    class Failing(SearchConfigManager):
        async def auto_detect_search_capabilities(self):
            raise RuntimeError("database unreachable")

    async def scenario():
        manager = Failing(ModuleRegistry())
        await manager.schedule_auto_detect(0)

    run(scenario())
    assert "Search auto-detection failed" in caplog.text


def test_stop_cancels_pending_detection():
    async def scenario():
        manager = SearchConfigManager(ModuleRegistry())
        task = manager.schedule_auto_detect(60)
        await manager.stop()
        return task

    assert run(scenario()).cancelled()


def test_catalog_lists_tables_and_forgets_reflections():
    async def scenario():
        engine = await _engine()
        try:
            catalog = SchemaCatalog(engine)
            names = await catalog.table_names()
            first = await catalog.get_table("roles")
            assert await catalog.get_table("roles") is first
            catalog.invalidate("roles")
            second = await catalog.get_table("roles")
            catalog.invalidate()
            return names, first, second
        finally:
            await engine.dispose()

    names, first, second = run(scenario())
    assert {"facilities", "profiles", "roles", "modules"} <= set(names)
    assert first is not second


def test_declared_module_replaces_same_name():
    registry = ModuleRegistry(modules=[ModuleInfo("Roles", "roles")])
    registry.declare(ModuleInfo("Roles", "roles_v2", "Moved"))
    registry.declare(ModuleInfo("Reports", "report_runs"))
    listed = run(registry.list_modules())
    assert [(m.name, m.table_name) for m in listed] == [
        ("Roles", "roles_v2"),
        ("Reports", "report_runs"),
    ]


def _unreachable_engine(tmp_path):
    return create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'missing-dir' / 'caregate.db'}"
    )


def test_catalog_reports_unreachable_database_as_execution_error(tmp_path):
    async def scenario():
        engine = _unreachable_engine(tmp_path)
        try:
            catalog = SchemaCatalog(engine)
            with pytest.raises(SearchExecutionError):
                await catalog.get_table("facilities")
            with pytest.raises(SearchExecutionError):
                await catalog.table_names()
        finally:
            await engine.dispose()

    run(scenario())


def test_auto_detect_skips_tables_when_database_is_down(tmp_path):
    async def scenario():
        engine = _unreachable_engine(tmp_path)
        try:
            manager = SearchConfigManager(
                ModuleRegistry(modules=[ModuleInfo("Facilities", "facilities")]),
                SearchFieldDetector(SchemaCatalog(engine)),
            )
            return manager, await manager.auto_detect_search_capabilities()
        finally:
            await engine.dispose()

    manager, stored = run(scenario())
    assert stored == 0
    assert manager.list_configs() == []


def test_module_registry_falls_back_when_module_table_missing():
    async def scenario():
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        try:
            registry = ModuleRegistry(
                session_factory=async_sessionmaker(engine, expire_on_commit=False),
                modules=[ModuleInfo("Roles", "roles", route="/role-management")],
            )
            return await registry.list_modules()
        finally:
            await engine.dispose()

    assert [m.name for m in run(scenario())] == ["Roles"]


def test_get_module_by_table():
    async def scenario():
        engine = await _engine()
        sessions = async_sessionmaker(engine, expire_on_commit=False)
        try:
            async with sessions() as session:
                session.add(
                    Module(name="Billing", table_name="invoices", route_path="/reports")
                )
                await session.commit()
            registry = ModuleRegistry(
                session_factory=sessions, modules=[ModuleInfo("Roles", "roles")]
            )
            return (
                await registry.get_module("invoices"),
                await registry.get_module("roles"),
                await registry.get_module("user_facility_access"),
            )
        finally:
            await engine.dispose()

    billing, roles, missing = run(scenario())
    assert billing.route == "/reports"
    assert roles.route is None
    assert missing is None
