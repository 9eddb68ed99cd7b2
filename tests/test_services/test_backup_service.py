"""
Tests for backup export, restore (both engines and the fallback between
them), image handling and the data wipe.
"""

import io
import json
import zipfile
from datetime import datetime

import pytest
from sqlalchemy import text
from werkzeug.datastructures import FileStorage

from app.exceptions import BackupRestoreError, UploadTooLargeError, ValidationError
from app.models.asset import Asset
from app.models.employee import Employee
from app.models.stock_opname import SOAssetEntry
from app.models.user import ROLE_ADMIN, ROLE_VIEWER, User
from app.services import (
    asset_service,
    backup_service,
    backup_transforms,
    employee_service,
    lookup_service,
    so_session_service,
    user_service,
)
from app.services.backup_engines import (
    RemoteRestoreEngine,
    SqlRestoreEngine,
    _order_users,
    is_missing_table_error,
)
from app.services.backup_transforms import TransformError
from app.services.table_store_client import TableStoreError


def _site_rows(count: int) -> list[dict]:
    return [{"id": f"s{i}", "name": f"Site {i}"} for i in range(count)]


# =========================================================================
# Row transforms
# =========================================================================


class TestCoercion:
    def test_candidate_keys(self):
        assert backup_transforms.candidate_keys("no_asset") == ("no_asset", "noAsset", "noasset")
        assert backup_transforms.candidate_keys("name") == ("name",)

    def test_to_bool(self):
        assert backup_transforms.to_bool("Yes") is True
        assert backup_transforms.to_bool("off") is False
        assert backup_transforms.to_bool(0) is False
        assert backup_transforms.to_bool("maybe") is None

    def test_to_number(self):
        assert backup_transforms.to_number("12.5") == 12.5
        assert backup_transforms.to_number("3", integer=True) == 3
        assert backup_transforms.to_number("inf") is None
        assert backup_transforms.to_number(True) is None

    def test_to_datetime(self):
        assert backup_transforms.to_datetime("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5)
        assert backup_transforms.to_datetime(0) == datetime(1970, 1, 1)
        assert backup_transforms.to_datetime("yesterday") is None


class TestTransformRows:
    def test_mixed_key_styles(self, db_session):
        [row] = backup_transforms.transform_rows(
            "assets",
            [{"id": "a1", "noAsset": "A-1", "name": "Laptop", "cost": "1500", "siteid": "s1"}],
        )
        assert row["no_asset"] == "A-1"
        assert row["cost"] == 1500.0
        assert row["site_id"] == "s1"
        assert row["status"] == "Active"
        assert isinstance(row["created_at"], datetime)

    def test_fallbacks_and_defaults(self, db_session):
        [row] = backup_transforms.transform_rows("sites", [{"id": "s1", "name": "HQ"}])
        assert row["country"] == "Indonesia"
        assert row["sort_order"] == 0

    def test_missing_id(self, db_session):
        with pytest.raises(TransformError, match='Missing required string "id" in table "sites"'):
            backup_transforms.transform_rows("sites", [{"name": "HQ"}])

    def test_unknown_table_and_junk_rows(self, db_session):
        assert backup_transforms.transform_rows("legacy", [{"id": "x"}]) == []
        assert len(backup_transforms.transform_rows("sites", ["junk", {"id": "s", "name": "A"}])) == 1


class TestRestoreOrder:
    def test_merge(self):
        order = backup_transforms.resolve_restore_order(
            ["assets", "sites", 3, " "], {"legacy": [], "sites": []}
        )
        assert order[:2] == ["assets", "sites"]
        assert order.count("sites") == 1
        assert order[-1] == "legacy"
        assert set(backup_transforms.DEFAULT_RESTORE_ORDER) <= set(order)

    def test_without_metadata(self):
        order = backup_transforms.resolve_restore_order(None, {})
        assert order == list(backup_transforms.DEFAULT_RESTORE_ORDER)


class TestEngineHelpers:
    def test_users_follow_their_creator(self):
        rows = [
            {"id": "b", "created_by": "a"},
            {"id": "a", "created_by": None},
            {"id": "c", "created_by": "ghost"},
        ]
        ordered = _order_users(rows)
        assert [r["id"] for r in ordered] == ["a", "c", "b"]
        assert ordered[1]["created_by"] is None

    def test_creator_cycle_is_broken(self):
        ordered = _order_users([{"id": "x", "created_by": "y"}, {"id": "y", "created_by": "x"}])
        assert [r["id"] for r in ordered] == ["x", "y"]
        assert all(r["created_by"] is None for r in ordered)

    def test_missing_table_detection(self):
        assert is_missing_table_error(TableStoreError('relation "public.x" does not exist'))
        assert is_missing_table_error(TableStoreError("lookup failed", code="PGRST205"))
        assert not is_missing_table_error(TableStoreError("permission denied", code="42501"))
        assert not is_missing_table_error(None)


# =========================================================================
# Export and SQL restore
# =========================================================================


@pytest.fixture
def populated(db_session):
    admin = user_service.create_user(
        email="boss@example.com", name="Boss", password="secret123", role=ROLE_ADMIN
    )
    user_service.create_user(
        email="reader@example.com", name="Reader", password="secret123", created_by=admin.id
    )
    site = lookup_service.create("sites", {"name": "Jakarta"})
    employee = employee_service.create_employee({"employeeId": "E-1", "name": "Agus"})
    asset_service.create_asset(
        {"noAsset": "A-1", "name": "Laptop", "siteId": site.id, "picId": employee.id}
    )
    return admin


class TestExport:
    def test_archive_contents(self, populated):
        buffer, name, metadata = backup_service.build_export()

        assert name.startswith("assetso-backup-") and name.endswith(".zip")
        assert metadata["tableCounts"]["assets"] == 1
        assert metadata["tableCounts"]["users"] == 2
        assert metadata["images"]["count"] == 0
        with zipfile.ZipFile(buffer) as archive:
            dump = json.loads(archive.read(backup_service.DATABASE_FILE))
            stored = json.loads(archive.read(backup_service.METADATA_FILE))
        assert dump["assets"][0]["no_asset"] == "A-1"
        assert stored["restoreOrder"] == list(dump.keys())

    def test_history_is_recorded(self, populated):
        _buffer, name = backup_service.export_backup(populated.id)
        history = backup_service.get_history()
        assert [r.name for r in history] == [name]
        assert history[0].created_by == populated.id


class TestSqlRestore:
    def test_round_trip(self, populated, db_session, tmp_path):
        buffer, _name, _metadata = backup_service.build_export()
        archive_path = tmp_path / "backup.zip"
        archive_path.write_bytes(buffer.getvalue())

        asset_service.create_asset({"noAsset": "A-2", "name": "Made after export"})
        asset_service.delete_asset(asset_service.get_asset_by_number("A-1").id)

        result = backup_service.restore_archive(
            str(archive_path), user_id=populated.id, engines=[SqlRestoreEngine()]
        )

        assert result["engine"] == "sql"
        assert result["engineErrors"] == []
        assert result["importedTables"]["assets"] == 1
        assert result["imagesRestored"] == 0
        assert [a.no_asset for a in Asset.query.all()] == ["A-1"]
        restored = Asset.query.one()
        assert restored.pic_id == Employee.query.one().id
        reader = User.query.filter_by(email="reader@example.com").one()
        assert reader.created_by == populated.id

    def test_archive_nested_one_level(self, populated, tmp_path):
        buffer, _name, _metadata = backup_service.build_export()
        with zipfile.ZipFile(buffer) as source:
            files = {name: source.read(name) for name in source.namelist()}
        nested = tmp_path / "nested.zip"
        with zipfile.ZipFile(nested, "w") as archive:
            for name, data in files.items():
                archive.writestr(f"backup/{name}", data)

        result = backup_service.restore_archive(str(nested), engines=[SqlRestoreEngine()])
        assert result["importedTables"]["sites"] == 1

    def test_missing_database_json(self, db_session, tmp_path):
        archive_path = tmp_path / "empty.zip"
        with zipfile.ZipFile(archive_path, "w") as archive:
            archive.writestr("readme.txt", "nothing here")
        with pytest.raises(ValidationError, match="Could not find database.json"):
            backup_service.restore_archive(str(archive_path), engines=[SqlRestoreEngine()])


class TestForeignKeyOrder:
    def test_foreign_keys_are_enforced(self, db_session):
        assert db_session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_shuffled_dump_restores(self, populated, db_session):
        session = so_session_service.create_session(
            {"name": "SO 2024", "year": 2024, "startDate": "2024-01-01", "endDate": "2024-01-31"}
        )
        so_session_service.scan_asset(session.id, no_asset="A-1")
        buffer, _name, metadata = backup_service.build_export()
        with zipfile.ZipFile(buffer) as archive:
            dump = json.loads(archive.read(backup_service.DATABASE_FILE))

        # Children listed before their parents.
        shuffled = {name: dump[name] for name in reversed(list(dump))}
        metadata["restoreOrder"] = list(shuffled)
        assert list(shuffled).index("so_asset_entries") < list(shuffled).index("sites")

        result = backup_service.restore_dump(shuffled, metadata, engines=[SqlRestoreEngine()])

        assert result["engine"] == "sql"
        assert result["importedTables"]["so_asset_entries"] == 1
        assert result["importedTables"]["sites"] == 1
        assert SOAssetEntry.query.one().asset.no_asset == "A-1"
        assert Asset.query.one().site.name == "Jakarta"


class TestImages:
    def test_images_travel_with_the_archive(self, app, db_session, tmp_path, monkeypatch):
        source_dir = tmp_path / "uploads"
        source_dir.mkdir()
        (source_dir / "photo.jpg").write_bytes(b"jpeg-bytes")
        monkeypatch.setitem(app.config, "UPLOAD_FOLDER", str(source_dir))
        asset_service.create_asset(
            {"noAsset": "A-1", "name": "Camera", "imageUrl": "/uploads/photo.jpg"}
        )

        buffer, _name, metadata = backup_service.build_export()
        assert metadata["images"]["manifest"][0]["relativePath"] == "uploads/photo.jpg"
        archive_path = tmp_path / "backup.zip"
        archive_path.write_bytes(buffer.getvalue())

        target_dir = tmp_path / "restored"
        monkeypatch.setitem(app.config, "UPLOAD_FOLDER", str(target_dir))
        result = backup_service.restore_archive(str(archive_path), engines=[SqlRestoreEngine()])

        assert result["imagesRestored"] == 1
        assert result["imagesFailed"] == 0
        assert (target_dir / "photo.jpg").read_bytes() == b"jpeg-bytes"

    def test_missing_image_is_counted(self, app, db_session, tmp_path, monkeypatch):
        monkeypatch.setitem(app.config, "UPLOAD_FOLDER", str(tmp_path / "out"))
        metadata = {"images": {"manifest": [{"fileName": "gone.jpg"}, {"fileName": ""}]}}
        assert backup_service.restore_images(str(tmp_path), metadata) == {
            "restored": 0,
            "failed": 2,
        }


# =========================================================================
# Remote engine and fallback
# =========================================================================


class TestRemoteRestore:
    def test_batches_and_serialises(self, db_session, fake_table_store):
        engine = RemoteRestoreEngine(client=fake_table_store, batch_size=2)
        order = backup_transforms.resolve_restore_order(None, {})

        results = engine.restore(order, {"sites": _site_rows(3)})

        assert results["sites"] == 3
        inserts = [size for op, table, size in fake_table_store.calls if op == "insert" and table == "sites"]
        assert inserts == [2, 1]
        assert isinstance(fake_table_store.tables["sites"][0]["created_at"], str)

    def test_missing_tables_are_skipped(self, db_session, fake_table_store):
        fake_table_store.missing.add("logs")
        engine = RemoteRestoreEngine(client=fake_table_store)
        order = backup_transforms.resolve_restore_order(None, {})

        results = engine.restore(
            order, {"sites": _site_rows(1), "logs": [{"id": "l1", "message": "x"}]}
        )

        assert results["sites"] == 1
        assert results["logs"] == 0
        assert "logs" not in fake_table_store.tables

    def test_other_errors_propagate(self, db_session, fake_table_store):
        fake_table_store.fail_on.add("assets")
        engine = RemoteRestoreEngine(client=fake_table_store)
        with pytest.raises(TableStoreError, match="permission denied"):
            engine.restore(["sites", "assets"], {"sites": _site_rows(1)})


class TestEngineFallback:
    def test_falls_back_to_sql(self, db_session, fake_table_store):
        fake_table_store.fail_on.add("assets")
        remote = RemoteRestoreEngine(client=fake_table_store)
        result = backup_service.restore_dump(
            {"sites": _site_rows(2)}, {}, engines=[remote, SqlRestoreEngine()]
        )
        assert result["engine"] == "sql"
        assert result["totalRestored"] == 2
        assert result["engineErrors"] == ["remote: permission denied for table assets"]

    def test_all_engines_fail(self, db_session, fake_table_store):
        engines = [RemoteRestoreEngine(client=fake_table_store), SqlRestoreEngine()]
        with pytest.raises(BackupRestoreError, match="All restore engines failed") as info:
            backup_service.restore_dump({"sites": [{"name": "no id"}]}, {}, engines=engines)
        assert list(info.value.engine_errors) == ["remote", "sql"]

    def test_dump_must_be_mapping(self, db_session):
        with pytest.raises(ValidationError, match="object of tables"):
            backup_service.restore_dump([], {}, engines=[SqlRestoreEngine()])

    def test_engine_preference(self, app, db_session, monkeypatch):
        assert [e.name for e in backup_service._engines()] == ["sql"]

        monkeypatch.setitem(app.config, "TABLE_STORE_URL", "https://store.example.com")
        monkeypatch.setitem(app.config, "TABLE_STORE_SERVICE_KEY", "service-key")
        assert [e.name for e in backup_service._engines()] == ["sql", "remote"]

        monkeypatch.setitem(app.config, "BACKUP_PREFERRED_ENGINE", "remote")
        assert [e.name for e in backup_service._engines()] == ["remote", "sql"]


# =========================================================================
# Upload validation
# =========================================================================


class TestImportBackup:
    def test_no_file(self, db_session):
        with pytest.raises(ValidationError, match="No backup file uploaded"):
            backup_service.import_backup(None)

    def test_wrong_extension(self, db_session):
        upload = FileStorage(stream=io.BytesIO(b"data"), filename="backup.tar")
        with pytest.raises(ValidationError, match=r"\.zip archive"):
            backup_service.import_backup(upload)

    def test_too_large(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "BACKUP_MAX_UPLOAD_BYTES", 10)
        upload = FileStorage(stream=io.BytesIO(b"x" * 100), filename="backup.zip")
        with pytest.raises(UploadTooLargeError):
            backup_service.import_backup(upload)

    def test_not_a_zip(self, db_session):
        upload = FileStorage(stream=io.BytesIO(b"not a zip"), filename="backup.zip")
        with pytest.raises(ValidationError, match="not a valid zip archive"):
            backup_service.import_backup(upload, engines=[SqlRestoreEngine()])


# =========================================================================
# Clean
# =========================================================================


class TestCleanData:
    def test_wipes_everything_but_admins(self, app, populated, db_session):
        results = backup_service.clean_data(populated.id)

        assert results["assets"] == 1
        assert results["employees"] == 1
        assert results["users"] == 1
        assert Asset.query.count() == 0
        assert {u.role for u in User.query.all()} == {ROLE_ADMIN}
        assert User.query.filter_by(email=app.config["DEFAULT_ADMIN_EMAIL"]).count() == 1
        assert User.query.filter_by(role=ROLE_VIEWER).count() == 0

    def test_lookups_survive(self, populated, db_session):
        backup_service.clean_data()
        assert [s.name for s in lookup_service.get_all("sites")] == ["Jakarta"]
