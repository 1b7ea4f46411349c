import unittest
from datetime import date, datetime, timezone

from painel.domain.records import (
    STATUS_FINALIZED,
    STATUS_PENDING,
    STATUS_REVIEWED,
    InvalidRecordError,
    LineItem,
    ReturnRecord,
    StatusTransitionError,
    UploadedAttachment,
    can_transition,
    iso_timestamp,
    next_toggle_status,
    parse_record_date,
    with_history,
    with_status,
)


def _return(**overrides) -> ReturnRecord:
    attrs = {
        "id": 1,
        "user_id": "ana@demo.com",
        "date": "2024-03-10",
        "client": "Mercado Sol",
        "items": (LineItem(product="Arroz 5kg", quantity=2),),
    }
    attrs.update(overrides)
    return ReturnRecord(**attrs)


class ReturnRecordTest(unittest.TestCase):
    def test_requires_at_least_one_item(self) -> None:
        with self.assertRaises(InvalidRecordError):
            _return(items=())

    def test_rejects_unknown_status(self) -> None:
        with self.assertRaises(InvalidRecordError):
            _return(status="arquivado")

    def test_total_quantity_and_urls(self) -> None:
        record = _return(
            items=(LineItem(product="A", quantity=2), LineItem(product="B", quantity=1.5)),
            attachments=(UploadedAttachment(url="/anexos/a.jpg"),),
        )
        self.assertEqual(record.total_quantity, 3.5)
        self.assertEqual(record.uploaded_urls, ("/anexos/a.jpg",))

    def test_to_dict_uses_portuguese_keys(self) -> None:
        payload = _return(owner_name="Ana").to_dict()
        self.assertEqual(payload["data"], "2024-03-10")
        self.assertEqual(payload["cliente"], "Mercado Sol")
        self.assertEqual(payload["usuario"], "Ana")
        self.assertEqual(payload["status_label"], "Pendente")
        self.assertEqual(payload["produtos"][0]["produto"], "Arroz 5kg")


class StatusTransitionTest(unittest.TestCase):
    def test_toggle_between_pending_and_reviewed(self) -> None:
        self.assertEqual(next_toggle_status(STATUS_PENDING), STATUS_REVIEWED)
        self.assertEqual(next_toggle_status(STATUS_REVIEWED), STATUS_PENDING)

    def test_finalized_cannot_toggle(self) -> None:
        with self.assertRaises(StatusTransitionError):
            next_toggle_status(STATUS_FINALIZED)
        self.assertFalse(can_transition(STATUS_FINALIZED, STATUS_PENDING))
        self.assertFalse(can_transition(STATUS_PENDING, STATUS_PENDING))

    def test_with_status_appends_history(self) -> None:
        now = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
        updated = with_status(_return(), STATUS_REVIEWED, "Ana", now)

        self.assertEqual(updated.status, STATUS_REVIEWED)
        self.assertEqual(len(updated.edit_history), 1)
        entry = updated.edit_history[0]
        self.assertEqual(entry.actor, "Ana")
        self.assertEqual(entry.timestamp, "2024-03-15T12:00:00Z")
        self.assertIn("pendente -> revisado", entry.description)

    def test_with_status_rejects_skipping(self) -> None:
        with self.assertRaises(StatusTransitionError):
            with_status(_return(), STATUS_FINALIZED, "Ana")

    def test_with_history_keeps_previous_entries(self) -> None:
        record = with_history(_return(), "Ana", "primeira")
        record = with_history(record, "Bia", "segunda")
        self.assertEqual([entry.description for entry in record.edit_history], ["primeira", "segunda"])


class ParseRecordDateTest(unittest.TestCase):
    def test_accepts_common_shapes(self) -> None:
        self.assertEqual(parse_record_date("2024-03-10"), date(2024, 3, 10))
        self.assertEqual(parse_record_date("2024-03-10T22:15:00Z"), date(2024, 3, 10))
        self.assertEqual(parse_record_date("2024-03-10 08:00:00"), date(2024, 3, 10))
        self.assertEqual(parse_record_date(datetime(2024, 3, 10, 9)), date(2024, 3, 10))

    def test_rejects_garbage(self) -> None:
        self.assertIsNone(parse_record_date("10/03/2024"))
        self.assertIsNone(parse_record_date(""))
        self.assertIsNone(parse_record_date(None))
        self.assertIsNone(parse_record_date(20240310))

    def test_iso_timestamp_normalizes_to_utc(self) -> None:
        self.assertEqual(iso_timestamp(datetime(2024, 3, 15, 9, 0, 7)), "2024-03-15T09:00:07Z")


if __name__ == "__main__":
    unittest.main()
