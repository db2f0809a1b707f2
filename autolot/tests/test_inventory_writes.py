"""End-to-end tests for the vehicle write pipeline over HTTP."""

import json
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from autolot.database.models import (
    AuctionPurchase, Document, Payment, Vehicle, VehicleFeatureMapping, VehicleImageSet, VehicleTagMapping,
)
from autolot.services.errors import ConflictError, ServerError
from autolot.services.inventory_service import write_unit

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64


def _count(database, column):
    s = database.session()
    try:
        return s.execute(select(func.count(column))).scalar_one()
    finally:
        s.close()


def _multipart(client, method, url, payload, files):
    return client.request(method, url, data={"data": json.dumps(payload)}, files=files)


class TestCreateVehicle:
    def test_create_and_fetch(self, client, sample_vehicle):
        sample_vehicle["tags"] = ["luxury", "certified"]
        sample_vehicle["features"] = ["Sunroof", "Heated Seats"]
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "success"
        vehicle_id = body["vehicle_id"]

        resp = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["make"] == "Toyota"
        assert data["model"] == "Camry"
        assert data["vin"] == "4T1BF1FK5CU123456"
        assert data["status"] == "available"
        assert data["tags"] == ["certified", "luxury"]
        assert data["features"] == ["Heated Seats", "Sunroof"]
        assert data["images"]["urls"] == []

    def test_vin_is_uppercased(self, client, sample_vehicle):
        sample_vehicle["vin"] = sample_vehicle["vin"].lower()
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 201
        data = client.get(f"/api/v1/inventory/vehicle/{resp.json()['vehicle_id']}").json()["data"]
        assert data["vin"] == "4T1BF1FK5CU123456"

    def test_duplicate_vin_conflict(self, client, database, sample_vehicle):
        assert client.post("/api/v1/inventory/vehicle", json=sample_vehicle).status_code == 201
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE_VIN"
        assert _count(database, Vehicle.id) == 1

    def test_negative_price_rejected_without_write(self, client, database, sample_vehicle):
        sample_vehicle["price"] = -5
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == "error"
        assert body["code"] == "VALIDATION_ERROR"
        assert _count(database, Vehicle.id) == 0

    def test_bad_enum_lists_allowed_values(self, client, sample_vehicle):
        sample_vehicle["body_type"] = "spaceship"
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 400
        assert "sedan" in resp.json()["message"]

    def test_missing_required_field(self, client, sample_vehicle):
        del sample_vehicle["make"]
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 400
        assert "make" in resp.json()["message"]

    def test_unsafe_carfax_link_rejected(self, client, sample_vehicle):
        sample_vehicle["carfax_link"] = "javascript:alert(1)"
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 400

    def test_create_with_images(self, client, blob_store, sample_vehicle):
        files = [
            ("images", ("front.png", PNG, "image/png")),
            ("images", ("side.jpg", JPEG, "image/jpeg")),
        ]
        sample_vehicle["primary_image_index"] = 1
        resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        assert resp.status_code == 201

        data = client.get(f"/api/v1/inventory/vehicle/{resp.json()['vehicle_id']}").json()["data"]
        urls = data["images"]["urls"]
        assert len(urls) == 2
        assert data["images"]["primary_index"] == 1
        assert [m["original_name"] for m in data["images"]["metadata"]] == ["front.png", "side.jpg"]
        assert sorted(blob_store.urls()) == sorted(urls)

    def test_image_set_failure_rolls_back_everything(self, client, database, blob_store, sample_vehicle):
        files = [("images", ("front.png", PNG, "image/png"))]
        with patch("autolot.services.association_service.get_image_set", return_value=None), patch(
            "autolot.services.association_service.VehicleImageSet",
            side_effect=OperationalError("INSERT INTO vehicle_images", {}, Exception("disk I/O error")),
        ):
            resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)

        assert resp.status_code == 500
        assert resp.json()["code"] == "SERVER_ERROR"
        assert _count(database, Vehicle.id) == 0
        assert _count(database, VehicleImageSet.id) == 0
        # Freshly uploaded blob was compensated
        assert blob_store.urls() == []

    def test_upload_failure_aborts_write(self, client, database, blob_store, sample_vehicle):
        files = [("images", ("front.png", PNG, "image/png"))]
        with patch.object(blob_store, "_put", side_effect=RuntimeError("storage down")):
            resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        assert resp.status_code == 500
        assert resp.json()["code"] == "IMAGE_UPLOAD_FAILED"
        assert _count(database, Vehicle.id) == 0

    def test_auction_status_rejected(self, client, database, sample_vehicle):
        sample_vehicle["status"] = "auction"
        resp = client.post("/api/v1/inventory/vehicle", json=sample_vehicle)
        assert resp.status_code == 400
        assert resp.json()["code"] == "AUCTION_MANAGED_STATUS"
        assert _count(database, Vehicle.id) == 0


class TestWriteUnitErrors:
    def test_not_null_violation_is_server_error(self, session, blob_store):
        with pytest.raises(ServerError) as exc_info:
            with write_unit(session, blob_store):
                raise IntegrityError(
                    "INSERT INTO vehicles", {}, Exception("NOT NULL constraint failed: vehicles.year")
                )
        assert exc_info.value.code == "SERVER_ERROR"

    def test_foreign_key_violation_is_server_error(self, session, blob_store):
        with pytest.raises(ServerError):
            with write_unit(session, blob_store):
                raise IntegrityError("INSERT INTO vehicle_tags", {}, Exception("FOREIGN KEY constraint failed"))

    def test_unique_vin_is_conflict(self, session, blob_store):
        with pytest.raises(ConflictError) as exc_info:
            with write_unit(session, blob_store):
                raise IntegrityError(
                    "INSERT INTO vehicles", {}, Exception("UNIQUE constraint failed: vehicles.vin")
                )
        assert exc_info.value.code == "DUPLICATE_VIN"

    def test_unique_auction_is_conflict(self, session, blob_store):
        with pytest.raises(ConflictError) as exc_info:
            with write_unit(session, blob_store):
                raise IntegrityError(
                    "INSERT INTO auction_vehicles", {},
                    Exception("UNIQUE constraint failed: auction_vehicles.vehicle_id"),
                )
        assert exc_info.value.code == "DUPLICATE_AUCTION"


class TestImageValidation:
    def test_wrong_extension(self, client, sample_vehicle):
        files = [("images", ("notes.txt", b"hello", "text/plain"))]
        resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_FILE"

    def test_mime_must_match_extension(self, client, sample_vehicle):
        files = [("images", ("front.png", JPEG, "image/jpeg"))]
        resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_FILE"

    def test_file_too_large(self, client, settings, sample_vehicle):
        settings.max_image_bytes = 32
        files = [("images", ("front.png", PNG, "image/png"))]
        resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        assert resp.status_code == 400
        assert resp.json()["code"] == "FILE_TOO_LARGE"

    def test_too_many_files(self, client, settings, database, sample_vehicle):
        settings.max_image_count = 2
        files = [("images", (f"img{i}.png", PNG, "image/png")) for i in range(3)]
        resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        assert resp.status_code == 400
        assert resp.json()["code"] == "TOO_MANY_FILES"
        assert _count(database, Vehicle.id) == 0

    def test_far_too_many_files_same_code(self, client, settings, database, sample_vehicle):
        # Beyond the form parser's own part limit
        settings.max_image_count = 2
        files = [("images", (f"img{i}.png", PNG, "image/png")) for i in range(6)]
        resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        assert resp.status_code == 400
        assert resp.json()["code"] == "TOO_MANY_FILES"
        assert _count(database, Vehicle.id) == 0


class TestUpdateVehicle:
    def _create(self, client, payload):
        resp = client.post("/api/v1/inventory/vehicle", json=payload)
        assert resp.status_code == 201
        return resp.json()["vehicle_id"]

    def test_partial_update_keeps_other_fields(self, client, sample_vehicle):
        sample_vehicle["tags"] = ["luxury"]
        vehicle_id = self._create(client, sample_vehicle)

        resp = client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"price": 23000})
        assert resp.status_code == 200
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["price"] == 23000
        assert data["mileage"] == 18000
        assert data["tags"] == ["luxury"]

    def test_omitted_tags_untouched_empty_tags_cleared(self, client, sample_vehicle):
        sample_vehicle["tags"] = ["luxury", "compact"]
        vehicle_id = self._create(client, sample_vehicle)

        client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"mileage": 19000})
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["tags"] == ["compact", "luxury"]

        client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"tags": []})
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["tags"] == []

    def test_tags_replaced_not_merged(self, client, sample_vehicle):
        sample_vehicle["tags"] = ["luxury"]
        vehicle_id = self._create(client, sample_vehicle)
        client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"tags": ["compact", "compact"]})
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["tags"] == ["compact"]

    def test_make_change_moves_model(self, client, sample_vehicle):
        vehicle_id = self._create(client, sample_vehicle)
        client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"make": "Lexus"})
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["make"] == "Lexus"
        assert data["model"] == "Camry"

    def test_null_required_field_rejected(self, client, sample_vehicle):
        vehicle_id = self._create(client, sample_vehicle)
        resp = client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"price": None})
        assert resp.status_code == 400

    def test_null_optional_field_clears(self, client, sample_vehicle):
        vehicle_id = self._create(client, sample_vehicle)
        client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"engine": None})
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["engine"] is None

    def test_duplicate_vin_on_update(self, client, sample_vehicle):
        self._create(client, sample_vehicle)
        other = dict(sample_vehicle, vin="1HGCM82633A004352")
        other_id = self._create(client, other)
        resp = client.put(f"/api/v1/inventory/vehicle/{other_id}", json={"vin": sample_vehicle["vin"]})
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE_VIN"

    def test_auction_status_without_purchase_rejected(self, client, sample_vehicle):
        vehicle_id = self._create(client, sample_vehicle)
        resp = client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"status": "auction"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "AUCTION_MANAGED_STATUS"
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["status"] == "available"

    def test_unknown_vehicle(self, client):
        resp = client.put("/api/v1/inventory/vehicle/999", json={"price": 1000})
        assert resp.status_code == 404
        assert resp.json()["code"] == "VEHICLE_NOT_FOUND"

    def test_image_replacement_deletes_old_blobs_after_commit(self, client, blob_store, sample_vehicle):
        files = [("images", ("a.png", PNG, "image/png"))]
        resp = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files)
        vehicle_id = resp.json()["vehicle_id"]
        old_urls = blob_store.urls()

        files = [("images", ("b.png", PNG, "image/png")), ("images", ("c.png", PNG, "image/png"))]
        resp = _multipart(client, "PUT", f"/api/v1/inventory/vehicle/{vehicle_id}", {}, files)
        assert resp.status_code == 200
        assert resp.json()["meta"]["blob_cleanup"]["deleted"] == old_urls

        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert len(data["images"]["urls"]) == 2
        assert sorted(blob_store.urls()) == sorted(data["images"]["urls"])

    def test_update_without_images_keeps_images(self, client, blob_store, sample_vehicle):
        files = [("images", ("a.png", PNG, "image/png"))]
        vehicle_id = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files).json()["vehicle_id"]
        client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"price": 20000})
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert len(data["images"]["urls"]) == 1

    def test_clear_images(self, client, blob_store, sample_vehicle):
        files = [("images", ("a.png", PNG, "image/png"))]
        vehicle_id = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files).json()["vehicle_id"]
        resp = client.put(f"/api/v1/inventory/vehicle/{vehicle_id}", json={"clear_images": True})
        assert resp.status_code == 200
        data = client.get(f"/api/v1/inventory/vehicle/{vehicle_id}").json()["data"]
        assert data["images"]["urls"] == []
        assert blob_store.urls() == []

    def test_cleanup_failure_reported_not_raised(self, client, blob_store, sample_vehicle):
        files = [("images", ("a.png", PNG, "image/png"))]
        vehicle_id = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files).json()["vehicle_id"]

        files = [("images", ("b.png", PNG, "image/png"))]
        with patch.object(blob_store, "_remove", side_effect=RuntimeError("403 forbidden")):
            resp = _multipart(client, "PUT", f"/api/v1/inventory/vehicle/{vehicle_id}", {}, files)
        assert resp.status_code == 200
        failed = resp.json()["meta"]["blob_cleanup"]["failed"]
        assert len(failed) == 1
        assert "403" in failed[0]["error"]


class TestDeleteVehicle:
    def test_delete_cascades(self, client, database, blob_store, sample_vehicle):
        sample_vehicle["tags"] = ["luxury"]
        sample_vehicle["features"] = ["Sunroof"]
        files = [("images", ("a.png", PNG, "image/png"))]
        vehicle_id = _multipart(client, "POST", "/api/v1/inventory/vehicle", sample_vehicle, files).json()["vehicle_id"]

        s = database.session()
        s.add(Payment(vehicle_id=vehicle_id, amount=500))
        s.add(Document(vehicle_id=vehicle_id, title="Title"))
        s.commit()
        s.close()

        resp = client.delete(f"/api/v1/inventory/vehicle/{vehicle_id}")
        assert resp.status_code == 200
        assert len(resp.json()["meta"]["blob_cleanup"]["deleted"]) == 1

        assert _count(database, Vehicle.id) == 0
        assert _count(database, VehicleTagMapping.vehicle_id) == 0
        assert _count(database, VehicleFeatureMapping.vehicle_id) == 0
        assert _count(database, VehicleImageSet.id) == 0
        assert _count(database, AuctionPurchase.id) == 0
        assert blob_store.urls() == []

        s = database.session()
        assert s.execute(select(Payment.vehicle_id)).scalar_one() is None
        assert s.execute(select(Document.vehicle_id)).scalar_one() is None
        s.close()

    def test_delete_unknown(self, client):
        resp = client.delete("/api/v1/inventory/vehicle/42")
        assert resp.status_code == 404
