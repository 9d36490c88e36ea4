"""Application tests for rider registration and bulk import."""

import pytest
from protean import current_domain

from ordering.errors import ConflictError
from ordering.rider.rider import Rider, import_riders


def _riders():
    return current_domain.repository_for(Rider)._dao.query.all().items


class TestRegisterRider:
    def test_phone_already_registered(self, register_rider):
        register_rider()
        with pytest.raises(ConflictError) as exc:
            register_rider(full_name="Someone Else")
        assert exc.value.code == "RIDER_EXISTS"
        assert len(_riders()) == 1


class TestImportRiders:
    def test_registers_each_row(self):
        result = import_riders(
            [
                {"full_name": "Jean Habimana", "phone": "250788555000", "vehicle": "Moto"},
                {"full_name": "Eric Mugisha", "phone": "250788555111", "email": "eric@example.com"},
            ]
        )

        assert result["imported"] == 2
        assert result["failed"] == 0
        riders = {r.phone: r for r in _riders()}
        assert riders["250788555000"].vehicle == "Moto"
        assert riders["250788555111"].email == "eric@example.com"
        assert riders["250788555111"].status == "active"

    def test_bad_rows_are_reported_and_skipped(self, register_rider):
        register_rider(phone="250788555000")

        result = import_riders(
            [
                {"full_name": "Jean Habimana", "phone": "250788555000"},
                {"full_name": None, "phone": "250788555222"},
                {"full_name": "Claude", "phone": "250788555333"},
            ]
        )

        assert result["imported"] == 1
        assert result["failed"] == 2
        [duplicate, nameless, imported] = result["results"]
        assert duplicate == {"row": 0, "rider_id": None, "error": "A rider with phone 250788555000 already exists"}
        assert nameless["error"] == "full_name and phone are required"
        assert imported["rider_id"] is not None
        assert len(_riders()) == 2

    def test_duplicate_within_one_batch(self):
        result = import_riders(
            [
                {"full_name": "Jean", "phone": "250788555000"},
                {"full_name": "Jean again", "phone": "250788555000"},
            ]
        )
        assert [r["rider_id"] is not None for r in result["results"]] == [True, False]
