from datetime import datetime
from unittest.mock import patch

import pytest

from fieldops.config import Settings
from fieldops.models import AuditStatus, EquipmentCount
from fieldops.services import NotificationService
from fieldops.services.ai_service import placeholder_audit
from fieldops.utils import (
    is_kml, match_fiber_count, new_invoice_id, new_transaction_id, strip_data_url, tally_equipment
)


class TestIds:

    def test_invoice_id_format(self):
        invoice_id = new_invoice_id(lambda _: False, now=datetime(2026, 3, 1))
        prefix, year, number = invoice_id.split("-")
        assert (prefix, year) == ("INV", "2026")
        assert 0 <= int(number) <= 999

    @patch("fieldops.utils.random.randint", side_effect=[7, 7, 42])
    def test_invoice_id_redrawn_on_collision(self, mock_randint):
        taken = {"INV-2026-7"}
        assert new_invoice_id(lambda i: i in taken, now=datetime(2026, 3, 1)) == "INV-2026-42"
        assert mock_randint.call_count == 3

    def test_transaction_id_suffixed_on_collision(self):
        seen = []

        def exists(candidate):
            seen.append(candidate)
            return len(seen) == 1

        tx_id = new_transaction_id(exists)
        assert tx_id == f"{seen[0]}-1"


class TestParsing:

    def test_strip_data_url(self):
        assert strip_data_url("data:image/png;base64,AAAA") == ("image/png", "AAAA")
        assert strip_data_url("AAAA") == (None, "AAAA")

    @pytest.mark.parametrize("mime,filename,expected", [
        ("application/vnd.google-earth.kml+xml", None, True),
        ("text/xml", "x.bin", True),
        ("application/octet-stream", "Route.KML", True),
        ("image/png", "map.png", False),
        (None, None, False),
    ])
    def test_is_kml(self, mime, filename, expected):
        assert is_kml(mime, filename) is expected

    def test_match_fiber_count(self):
        assert match_fiber_count("288ct loose tube") == "288ct"
        assert match_fiber_count("24 F") == "24ct"
        assert match_fiber_count("Unknown") == "48ct"
        assert match_fiber_count(None) == "48ct"

    def test_tally_equipment(self):
        items = tally_equipment([
            EquipmentCount(name="Âncora", quantity=2),
            EquipmentCount(name="Down guy anchor", quantity=1),
            EquipmentCount(name="Reserva técnica", quantity=4),
            EquipmentCount(name="Splice case", quantity=3),
        ])
        assert items.anchors == 3
        assert items.snowshoes == 4
        assert items.risers == 0


class TestNotifications:

    def test_newest_first_and_mark_read(self):
        service = NotificationService()
        service.add("First", "one")
        service.add("Second", "two", "warning")
        feed = service.list()
        assert [n.title for n in feed.items] == ["Second", "First"]
        assert feed.unread == 2

        service.mark_all_read()
        assert service.list().unread == 0

    @pytest.mark.parametrize("status,expected", [
        (AuditStatus.CRITICAL, "critical"),
        (AuditStatus.DIVERGENT, "warning"),
        (AuditStatus.COMPLIANT, "success"),
        (AuditStatus.PENDING, "info"),
    ])
    def test_audit_notification_type(self, status, expected):
        result = placeholder_audit().model_copy(update={"status": status})
        assert NotificationService().notify_audit(result).type == expected


class TestSettings:

    def test_environment_urls(self):
        config = Settings()
        config.DB_PROD_PASSWORD = "p@ss"
        assert config.get_database_url("test") == config.DATABASE_URL_TEST
        assert config.get_database_url("prod").startswith("mysql+pymysql://")
        assert "p%40ss" in config.get_database_url("prod")

    def test_unknown_environment(self):
        with pytest.raises(ValueError):
            Settings().set_environment("staging")
