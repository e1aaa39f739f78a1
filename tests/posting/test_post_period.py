"""
Period close: PostingService.post_period.

Verifies:
- Posting adds each entry's amount to its detail account and that account's
  general account, on the entry's side, and marks it POSTED.
- Closing a date twice posts it once.
- Entries are grouped into one posting batch per ledger date.
- A single rejected entry aborts the whole close with every rejection listed.
- A range already closed stays closed, and the summary names a reopenable date.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.dtos import RejectionReason
from ledger_kernel.domain.values import Money
from ledger_kernel.exceptions import (
    AlreadyPostedForDateError,
    NoPendingEntriesError,
    ValidationFailedError,
)
from ledger_kernel.models.account import DetailAccount, GeneralAccount
from ledger_kernel.models.ledger_entry import PostingStatus
from ledger_kernel.models.posting_batch import PostingBatch, PostingBatchLine

JAN_15 = date(2025, 1, 15)


class TestPostSingleEntry:
    """A single 500.00 DEBIT on detail account 4001, dated 2025-01-15."""

    def test_balances_status_and_summary(
        self, posting_service, standard_accounts, create_entry, load_account,
        load_entry, test_actor_id,
    ):
        entry_id = create_entry("4001", "500.00", "DEBIT", JAN_15)

        summary = posting_service.post_period(JAN_15, test_actor_id)

        assert summary.posted_count == 1
        assert summary.total_debit == Money.of("500.00")
        assert summary.total_credit == Money.of("0.00")
        assert summary.batch_date == JAN_15
        assert summary.batch_dates == (JAN_15,)

        assert load_account(DetailAccount, "4001") == (Decimal("500.00"), Decimal("0.00"))
        assert load_account(GeneralAccount, "4000") == (Decimal("500.00"), Decimal("0.00"))

        entry = load_entry(entry_id)
        assert entry.posting_status == PostingStatus.POSTED
        assert entry.posted_by_id == test_actor_id
        assert entry.posted_at is not None

    def test_posted_at_comes_from_clock(
        self, posting_service, standard_accounts, create_entry, load_entry,
        deterministic_clock, test_actor_id,
    ):
        deterministic_clock.set_time(datetime(2025, 2, 1, 9, 30, tzinfo=timezone.utc))
        entry_id = create_entry("4001", "10.00")

        posting_service.post_period(JAN_15, test_actor_id)

        posted_at = load_entry(entry_id).posted_at
        assert posted_at.replace(tzinfo=None) == datetime(2025, 2, 1, 9, 30)

    def test_untouched_accounts_stay_zero(
        self, posting_service, standard_accounts, create_entry, load_account, test_actor_id,
    ):
        create_entry("4001", "500.00")
        posting_service.post_period(JAN_15, test_actor_id)

        assert load_account(DetailAccount, "4002") == (Decimal("0.00"), Decimal("0.00"))
        assert load_account(GeneralAccount, "5000") == (Decimal("0.00"), Decimal("0.00"))


class TestPostMixedEntries:

    def test_debits_and_credits_accumulate_separately(
        self, posting_service, standard_accounts, create_entry, load_account, test_actor_id,
    ):
        create_entry("4001", "100.00", "DEBIT")
        create_entry("4001", "30.25", "CREDIT")
        create_entry("4002", "0.75", "DEBIT")
        create_entry("5001", "12.00", "CREDIT")

        summary = posting_service.post_period(JAN_15, test_actor_id)

        assert summary.posted_count == 4
        assert summary.total_debit == Money.of("100.75")
        assert summary.total_credit == Money.of("42.25")

        assert load_account(DetailAccount, "4001") == (Decimal("100.00"), Decimal("30.25"))
        assert load_account(DetailAccount, "4002") == (Decimal("0.75"), Decimal("0.00"))
        assert load_account(GeneralAccount, "4000") == (Decimal("100.75"), Decimal("30.25"))
        assert load_account(GeneralAccount, "5000") == (Decimal("0.00"), Decimal("12.00"))

    def test_general_balance_equals_sum_of_details(
        self, posting_service, standard_accounts, create_entry, load_account, test_actor_id,
    ):
        for amount in ("0.01", "0.02", "99.97"):
            create_entry("4001", amount)
            create_entry("4002", amount, "CREDIT")

        posting_service.post_period(JAN_15, test_actor_id)

        d1 = load_account(DetailAccount, "4001")
        d2 = load_account(DetailAccount, "4002")
        general = load_account(GeneralAccount, "4000")
        assert general == (d1[0] + d2[0], d1[1] + d2[1])

    def test_batch_record_written(
        self, posting_service, standard_accounts, create_entry, session_factory, test_actor_id,
    ):
        create_entry("4001", "500.00")
        create_entry("5001", "20.00", "CREDIT")

        posting_service.post_period(JAN_15, test_actor_id)

        with session_scope(session_factory) as s:
            batch = s.execute(select(PostingBatch)).scalar_one()
            assert batch.batch_date == JAN_15
            assert batch.entry_count == 2
            assert batch.total_debit == Decimal("500.00")
            assert batch.total_credit == Decimal("20.00")
            assert batch.closed_by_id == test_actor_id
            lines = {(l.account_kind, l.account_number): (l.debit, l.credit) for l in batch.lines}
        assert lines == {
            ("DETAIL", "4001"): (Decimal("500.00"), Decimal("0.00")),
            ("GENERAL", "4000"): (Decimal("500.00"), Decimal("0.00")),
            ("DETAIL", "5001"): (Decimal("0.00"), Decimal("20.00")),
            ("GENERAL", "5000"): (Decimal("0.00"), Decimal("20.00")),
        }


class TestIdempotency:

    def test_second_close_of_same_date_rejected(
        self, posting_service, standard_accounts, create_entry, load_account, test_actor_id,
    ):
        create_entry("4001", "500.00")
        posting_service.post_period(JAN_15, test_actor_id)

        with pytest.raises(AlreadyPostedForDateError) as exc_info:
            posting_service.post_period(JAN_15, test_actor_id)

        assert exc_info.value.batch_date == JAN_15
        assert exc_info.value.http_status == 409
        assert load_account(DetailAccount, "4001") == (Decimal("500.00"), Decimal("0.00"))

    def test_second_close_rejected_even_with_new_pending_entries(
        self, posting_service, standard_accounts, create_entry, load_account,
        session_factory, test_actor_id,
    ):
        create_entry("4001", "500.00")
        posting_service.post_period(JAN_15, test_actor_id)

        # direct insert: LedgerEntryService refuses entries on closed dates
        create_entry("4001", "1.00")

        with pytest.raises(AlreadyPostedForDateError):
            posting_service.post_period(JAN_15, test_actor_id)

        assert load_account(DetailAccount, "4001") == (Decimal("500.00"), Decimal("0.00"))
        with session_scope(session_factory) as s:
            assert s.execute(select(func.count()).select_from(PostingBatch)).scalar_one() == 1

    def test_second_close_rejected_when_entries_predate_close_date(
        self, posting_service, standard_accounts, create_entry, load_account,
        load_entry, test_actor_id,
    ):
        jan_14 = date(2025, 1, 14)
        entry_id = create_entry("4001", "500.00", ledger_date=jan_14)

        summary = posting_service.post_period(JAN_15, test_actor_id)
        assert summary.batch_date == jan_14
        assert posting_service.closed_dates() == [jan_14]

        with pytest.raises(AlreadyPostedForDateError) as exc_info:
            posting_service.post_period(JAN_15, test_actor_id)
        assert exc_info.value.batch_date == jan_14
        assert exc_info.value.http_status == 409
        assert load_account(DetailAccount, "4001") == (Decimal("500.00"), Decimal("0.00"))

        posting_service.unpost_period(summary.batch_date, test_actor_id)
        assert load_entry(entry_id).posting_status == PostingStatus.PENDING
        assert load_account(DetailAccount, "4001") == (Decimal("0.00"), Decimal("0.00"))

    def test_closed_dates_listed(
        self, posting_service, standard_accounts, create_entry, test_actor_id,
    ):
        assert posting_service.closed_dates() == []
        create_entry("4001", "1.00", ledger_date=date(2025, 1, 10))
        create_entry("4001", "1.00", ledger_date=JAN_15)
        posting_service.post_period(JAN_15, test_actor_id)
        assert posting_service.closed_dates() == [date(2025, 1, 10), JAN_15]


class TestNoPendingEntries:

    def test_empty_ledger(self, posting_service, standard_accounts, test_actor_id):
        with pytest.raises(NoPendingEntriesError) as exc_info:
            posting_service.post_period(JAN_15, test_actor_id)
        assert exc_info.value.upto_date == JAN_15

    def test_only_later_entries(
        self, posting_service, standard_accounts, create_entry, load_entry, test_actor_id,
    ):
        entry_id = create_entry("4001", "500.00", ledger_date=date(2025, 1, 16))

        with pytest.raises(NoPendingEntriesError):
            posting_service.post_period(JAN_15, test_actor_id)

        assert load_entry(entry_id).posting_status == PostingStatus.PENDING

    def test_soft_deleted_entries_ignored(
        self, posting_service, standard_accounts, create_entry, session_factory, test_actor_id,
    ):
        from ledger_kernel.services.ledger_entry_service import LedgerEntryService

        entry_id = create_entry("4001", "500.00")
        with session_scope(session_factory) as s:
            LedgerEntryService(s).soft_delete_entry(entry_id, test_actor_id)

        with pytest.raises(NoPendingEntriesError):
            posting_service.post_period(JAN_15, test_actor_id)


class TestMultiDateClose:

    def test_one_batch_per_ledger_date(
        self, posting_service, standard_accounts, create_entry, load_account,
        session_factory, test_actor_id,
    ):
        create_entry("4001", "10.00", ledger_date=date(2025, 1, 13))
        create_entry("4001", "20.00", ledger_date=date(2025, 1, 14))
        create_entry("4002", "5.00", "CREDIT", ledger_date=date(2025, 1, 14))
        create_entry("4001", "40.00", ledger_date=JAN_15)
        create_entry("4001", "80.00", ledger_date=date(2025, 1, 16))

        summary = posting_service.post_period(JAN_15, test_actor_id)

        assert summary.posted_count == 4
        assert summary.batch_date == JAN_15
        assert summary.batch_dates == (date(2025, 1, 13), date(2025, 1, 14), JAN_15)
        assert summary.total_debit == Money.of("70.00")
        assert summary.total_credit == Money.of("5.00")
        assert load_account(DetailAccount, "4001") == (Decimal("70.00"), Decimal("0.00"))

        with session_scope(session_factory) as s:
            counts = dict(s.execute(
                select(PostingBatch.batch_date, PostingBatch.entry_count)
            ).all())
        assert counts == {date(2025, 1, 13): 1, date(2025, 1, 14): 2, JAN_15: 1}

    def test_later_close_picks_up_remaining_dates(
        self, posting_service, standard_accounts, create_entry, load_account, test_actor_id,
    ):
        create_entry("4001", "10.00", ledger_date=JAN_15)
        create_entry("4001", "80.00", ledger_date=date(2025, 1, 16))

        posting_service.post_period(JAN_15, test_actor_id)
        summary = posting_service.post_period(date(2025, 1, 16), test_actor_id)

        assert summary.posted_count == 1
        assert summary.batch_dates == (date(2025, 1, 16),)
        assert load_account(DetailAccount, "4001") == (Decimal("90.00"), Decimal("0.00"))


class TestPostBatchDirect:
    """PostingEngine.post_batch records exactly one ledger date."""

    def test_entry_from_another_date_rejected(
        self, posting_service, standard_accounts, create_entry, load_account,
        load_entry, test_actor_id,
    ):
        entry_id = create_entry("4001", "500.00", ledger_date=date(2025, 1, 14))

        with pytest.raises(ValidationFailedError) as exc_info:
            posting_service.engine.post_batch(JAN_15, [entry_id], test_actor_id)

        [rejection] = exc_info.value.rejections
        assert rejection.entry_id == entry_id
        assert rejection.reason == RejectionReason.INVALID_DATE
        assert load_entry(entry_id).posting_status == PostingStatus.PENDING
        assert load_account(DetailAccount, "4001") == (Decimal("0.00"), Decimal("0.00"))
        assert posting_service.closed_dates() == []

    def test_same_date_batch_can_be_reverted(
        self, posting_service, standard_accounts, create_entry, load_account,
        load_entry, test_actor_id,
    ):
        entry_id = create_entry("4001", "500.00")

        record = posting_service.engine.post_batch(JAN_15, [entry_id], test_actor_id)
        assert record.entry_count == 1

        posting_service.engine.unpost_batch(JAN_15, test_actor_id)
        assert load_entry(entry_id).posting_status == PostingStatus.PENDING
        assert load_account(DetailAccount, "4001") == (Decimal("0.00"), Decimal("0.00"))


class TestValidationAbort:

    def test_one_bad_entry_aborts_everything(
        self, posting_service, standard_accounts, create_entry, load_account,
        load_entry, session_factory, test_actor_id,
    ):
        good_id = create_entry("4001", "500.00")
        bad_id = create_entry("4002", "20.00", "KREDIT")

        with pytest.raises(ValidationFailedError) as exc_info:
            posting_service.post_period(JAN_15, test_actor_id)

        rejections = exc_info.value.rejections
        assert [r.entry_id for r in rejections] == [bad_id]
        assert rejections[0].reason == RejectionReason.INVALID_TRANSACTION_TYPE
        assert exc_info.value.http_status == 422

        assert load_entry(good_id).posting_status == PostingStatus.PENDING
        assert load_account(DetailAccount, "4001") == (Decimal("0.00"), Decimal("0.00"))
        with session_scope(session_factory) as s:
            assert s.execute(select(func.count()).select_from(PostingBatch)).scalar_one() == 0
            assert s.execute(select(func.count()).select_from(PostingBatchLine)).scalar_one() == 0

    def test_rejections_from_every_date_reported(
        self, posting_service, standard_accounts, create_entry, soft_delete_account,
        load_account, test_actor_id,
    ):
        create_entry("4001", "10.00", ledger_date=date(2025, 1, 13))
        bad_amount = create_entry("4001", "0.00", ledger_date=date(2025, 1, 14))
        deleted_account = create_entry("4002", "1.00", ledger_date=JAN_15)
        soft_delete_account(DetailAccount, "4002")

        with pytest.raises(ValidationFailedError) as exc_info:
            posting_service.post_period(JAN_15, test_actor_id)

        reasons = {r.entry_id: r.reason for r in exc_info.value.rejections}
        assert reasons == {
            bad_amount: RejectionReason.INVALID_AMOUNT,
            deleted_account: RejectionReason.ACCOUNT_NOT_FOUND,
        }
        # the valid 2025-01-13 group was rolled back too
        assert load_account(DetailAccount, "4001") == (Decimal("0.00"), Decimal("0.00"))
        assert posting_service.closed_dates() == []


class TestServiceLogging:

    def test_started_and_completed_logged(
        self, posting_service, standard_accounts, create_entry, captured_logs, test_actor_id,
    ):
        create_entry("4001", "500.00")
        posting_service.post_period(JAN_15, test_actor_id)

        logs = captured_logs()
        messages = [r["message"] for r in logs]
        assert "post_period_started" in messages
        assert "posting_batch_applied" in messages
        completed = next(r for r in logs if r["message"] == "post_period_completed")
        assert completed["posted_count"] == 1
        assert completed["total_debit"] == "500.00"
        assert completed["batch_date"] == "2025-01-15"
        assert completed["actor_id"] == str(test_actor_id)
        assert "duration_ms" in completed
        assert "correlation_id" in completed

    def test_failure_logged_with_code(
        self, posting_service, standard_accounts, captured_logs, test_actor_id,
    ):
        with pytest.raises(NoPendingEntriesError):
            posting_service.post_period(JAN_15, test_actor_id)

        failed = next(r for r in captured_logs() if r["message"] == "post_period_failed")
        assert failed["exc_code"] == "NO_PENDING_ENTRIES"
        assert failed["level"] == "ERROR"
