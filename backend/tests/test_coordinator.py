"""
Tests for the offer lifecycle coordinator: accept, cancel, offer, decline.
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import T0
from fakes import InMemoryEngagementStore, local_procedures
from shared.coordinator import OfferCoordinator
from shared.models import EngagementKind, EngagementStatus, InvoiceStatus, Rejection


class InterleavingStore(InMemoryEngagementStore):
    """Runs `interleave` right before the first guarded write, to force a lost race."""

    def __init__(self, kind, interleave=None):
        super().__init__(kind)
        self.interleave = interleave

    def conditional_update(self, engagement_id, updates, guard):
        hook, self.interleave = self.interleave, None
        if hook:
            hook()
        return super().conditional_update(engagement_id, updates, guard)


class TestAttemptAccept:
    """Single assignment and one-active-engagement rules."""

    def test_accept_assigns_runner(self, coordinator, store, clock, notifier):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0, title='Print notes')

        result = coordinator.attempt_accept('c1', 'R1')

        assert result.ok
        row = store.get('c1')
        assert row['runnerId'] == 'R1'
        assert row['status'] == EngagementStatus.IN_PROGRESS
        assert row['acceptedAt'] == clock.now
        assert row['invoiceStatus'] == InvoiceStatus.DRAFT
        assert notifier.sent == [('c1', EngagementKind.COMMISSION)]

    def test_accept_clears_pending_offer(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0,
                   notifiedRunnerId='R1', notifiedAt=T0, notifiedExpiresAt=T0 + 60_000)

        assert coordinator.attempt_accept('c1', 'R1').ok

        row = store.get('c1')
        assert row['notifiedRunnerId'] is None
        assert row['notifiedExpiresAt'] is None

    def test_concurrent_accepts_have_exactly_one_winner(self, store, clock):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        runners = [f'R{i}' for i in range(8)]
        barrier = threading.Barrier(len(runners))

        def accept(runner_id):
            coordinator = OfferCoordinator(
                EngagementKind.COMMISSION, store=store,
                procedures=local_procedures(store, clock), clock=clock
            )
            barrier.wait()
            return runner_id, coordinator.attempt_accept('c1', runner_id)

        with ThreadPoolExecutor(max_workers=len(runners)) as pool:
            results = list(pool.map(accept, runners))

        winners = [runner for runner, result in results if result.ok]
        losers = [result for _, result in results if not result.ok]
        assert len(winners) == 1
        assert all(result.reason == Rejection.TAKEN_BY_OTHER for result in losers)
        assert store.get('c1')['runnerId'] == winners[0]
        assert store.updates == 1

    def test_same_millisecond_race_loser_sees_taken_by_other(self, clock):
        store = InterleavingStore(EngagementKind.COMMISSION)
        store.seed(engagementId='7', callerId='caller-1', createdAt=T0)
        procedures = local_procedures(store, clock)
        r2 = OfferCoordinator(EngagementKind.COMMISSION, store=store, procedures=procedures, clock=clock)
        r1 = OfferCoordinator(EngagementKind.COMMISSION, store=store, procedures=procedures, clock=clock)
        r2_results = []
        # R1 passes every pre-check, then R2 commits just before R1's write lands
        store.interleave = lambda: r2_results.append(r2.attempt_accept('7', 'R2'))

        r1_result = r1.attempt_accept('7', 'R1')

        assert r2_results[0].ok
        assert not r1_result.ok
        assert r1_result.reason == Rejection.TAKEN_BY_OTHER
        row = store.get('7')
        assert row['runnerId'] == 'R2'
        assert row['status'] == EngagementStatus.IN_PROGRESS

    def test_runner_with_active_engagement_is_rejected(self, coordinator, store):
        store.seed(engagementId='busy', callerId='caller-9', createdAt=T0,
                   runnerId='R1', status=EngagementStatus.IN_PROGRESS)
        store.seed(engagementId='c2', callerId='caller-2', createdAt=T0)

        result = coordinator.attempt_accept('c2', 'R1')

        assert result.reason == Rejection.ALREADY_ACTIVE
        assert store.get('c2').get('runnerId') is None

    def test_legacy_accepted_status_counts_as_active(self, coordinator, store):
        store.seed(engagementId='old', callerId='caller-9', createdAt=T0,
                   runnerId='R1', status=EngagementStatus.ACCEPTED)
        store.seed(engagementId='c2', callerId='caller-2', createdAt=T0)

        assert coordinator.attempt_accept('c2', 'R1').reason == Rejection.ALREADY_ACTIVE

    def test_second_engagement_from_same_requester_is_rejected(self, coordinator, store):
        store.seed(engagementId='first', callerId='R-caller', createdAt=T0,
                   runnerId='R1', status=EngagementStatus.IN_PROGRESS)
        store.seed(engagementId='second', callerId='R-caller', createdAt=T0,
                   notifiedRunnerId='R1', notifiedExpiresAt=T0 + 60_000)

        result = coordinator.attempt_accept('second', 'R1')

        assert result.reason == Rejection.ALREADY_ACTIVE
        assert store.get('second').get('runnerId') is None

    def test_completed_engagement_does_not_block(self, coordinator, store):
        store.seed(engagementId='done', callerId='caller-1', createdAt=T0,
                   runnerId='R1', status=EngagementStatus.COMPLETED)
        store.seed(engagementId='c2', callerId='caller-1', createdAt=T0)

        assert coordinator.attempt_accept('c2', 'R1').ok

    def test_already_taken_is_reported_before_writing(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0,
                   runnerId='R2', status=EngagementStatus.IN_PROGRESS)

        result = coordinator.attempt_accept('c1', 'R1')

        assert result.reason == Rejection.TAKEN_BY_OTHER
        assert store.updates == 0

    def test_reaccepting_own_engagement_is_already_active(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0,
                   runnerId='R1', status=EngagementStatus.IN_PROGRESS)

        assert coordinator.attempt_accept('c1', 'R1').reason == Rejection.ALREADY_ACTIVE

    def test_cancelled_engagement_cannot_be_accepted(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0, status=EngagementStatus.CANCELLED)

        assert coordinator.attempt_accept('c1', 'R1').reason == Rejection.NO_LONGER_ELIGIBLE

    def test_missing_engagement(self, coordinator):
        assert coordinator.attempt_accept('nope', 'R1').reason == Rejection.NOT_FOUND

    def test_unauthenticated_runner(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        assert coordinator.attempt_accept('c1', None).reason == Rejection.UNAUTHENTICATED

    def test_missing_id_is_a_programming_error(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.attempt_accept('', 'R1')

    def test_notifier_failure_does_not_undo_accept(self, store, clock):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        def broken_notifier(engagement, kind):
            raise RuntimeError('messages table unavailable')

        coordinator = OfferCoordinator(
            EngagementKind.COMMISSION, store=store,
            procedures=local_procedures(store, clock), notifier=broken_notifier, clock=clock
        )

        result = coordinator.attempt_accept('c1', 'R1')

        assert result.ok
        assert store.get('c1')['runnerId'] == 'R1'

    def test_accept_cancels_local_timer(self, store, clock):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        cancelled = []

        class Timers:
            def cancel(self, engagement_id):
                cancelled.append(engagement_id)

        coordinator = OfferCoordinator(
            EngagementKind.COMMISSION, store=store,
            procedures=local_procedures(store, clock), timers=Timers(), clock=clock
        )

        assert coordinator.attempt_accept('c1', 'R1').ok
        assert cancelled == ['c1']


class TestAttemptCancel:
    """The 30-second cancellation window."""

    def test_cancel_just_inside_window(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        result = coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 29_999)

        assert result.ok
        assert store.get('c1')['status'] == EngagementStatus.CANCELLED

    def test_cancel_at_exact_boundary(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        assert coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 30_000).ok

    def test_cancel_just_outside_window(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        result = coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 30_001)

        assert result.reason == Rejection.WINDOW_EXPIRED
        assert store.get('c1')['status'] == EngagementStatus.PENDING

    def test_cancel_after_assignment_fails_inside_window(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        assert coordinator.attempt_accept('c1', 'R1').ok

        result = coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 1_000)

        assert result.reason == Rejection.NO_LONGER_ELIGIBLE
        assert store.get('c1')['status'] == EngagementStatus.IN_PROGRESS

    def test_cancel_after_assignment_fails_outside_window(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        assert coordinator.attempt_accept('c1', 'R1').ok

        assert not coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 45_000).ok

    def test_cancel_uses_clock_when_no_time_given(self, coordinator, store, clock):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        clock.advance(31_000)

        assert coordinator.attempt_cancel('c1', 'caller-1').reason == Rejection.WINDOW_EXPIRED

    def test_only_requester_can_cancel(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        assert coordinator.attempt_cancel('c1', 'caller-2', now=T0).reason == Rejection.NOT_REQUESTER

    def test_cancel_clears_offer(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0,
                   notifiedRunnerId='R1', notifiedExpiresAt=T0 + 60_000)

        assert coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 5_000).ok
        assert store.get('c1')['notifiedRunnerId'] is None

    def test_cancel_twice(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        assert coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 1_000).ok
        assert coordinator.attempt_cancel('c1', 'caller-1', now=T0 + 2_000).reason == Rejection.NO_LONGER_ELIGIBLE

    def test_cancel_and_accept_race_has_one_winner(self, clock):
        store = InterleavingStore(EngagementKind.COMMISSION)
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        procedures = local_procedures(store, clock)
        runner = OfferCoordinator(EngagementKind.COMMISSION, store=store, procedures=procedures, clock=clock)
        caller = OfferCoordinator(EngagementKind.COMMISSION, store=store, procedures=procedures, clock=clock)
        accepted = []
        store.interleave = lambda: accepted.append(runner.attempt_accept('c1', 'R1'))

        result = caller.attempt_cancel('c1', 'caller-1', now=T0 + 10_000)

        assert accepted[0].ok
        assert result.reason == Rejection.NO_LONGER_ELIGIBLE
        assert store.get('c1')['status'] == EngagementStatus.IN_PROGRESS


class TestOfferAndDecline:
    """Ranked offer queue."""

    def test_offer_notifies_first_ranked_runner(self, coordinator, store, clock):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        result = coordinator.offer('c1', ['R1', 'R2', 'R1', ''], requester_id='caller-1')

        assert result.ok
        row = store.get('c1')
        assert row['rankedRunnerIds'] == ['R1', 'R2']
        assert row['currentQueueIndex'] == 0
        assert row['notifiedRunnerId'] == 'R1'
        assert row['notifiedExpiresAt'] == clock.now + 60_000

    def test_offer_with_no_runners(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        assert coordinator.offer('c1', []).reason == Rejection.NOT_OFFERED

    def test_offer_skips_runners_that_already_timed_out(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0, timeoutRunnerIds=['R1'])

        assert coordinator.offer('c1', ['R1', 'R2']).ok
        assert store.get('c1')['notifiedRunnerId'] == 'R2'

    def test_offer_while_already_offered(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0,
                   notifiedRunnerId='R1', notifiedExpiresAt=T0 + 60_000)

        assert coordinator.offer('c1', ['R2']).reason == Rejection.NO_LONGER_ELIGIBLE

    def test_offer_by_someone_else(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)

        assert coordinator.offer('c1', ['R1'], requester_id='caller-2').reason == Rejection.NOT_REQUESTER

    def test_decline_moves_to_next_runner(self, coordinator, store, clock):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        coordinator.offer('c1', ['R1', 'R2'])
        clock.advance(5_000)

        result = coordinator.decline('c1', 'R1')

        assert result.ok
        assert result.data['nextRunnerId'] == 'R2'
        row = store.get('c1')
        assert row['notifiedRunnerId'] == 'R2'
        assert row['notifiedExpiresAt'] == clock.now + 60_000
        assert row['declinedRunnerIds'] == ['R1']

    def test_decline_by_last_runner_releases_to_open_pool(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        coordinator.offer('c1', ['R1'])

        result = coordinator.decline('c1', 'R1')

        assert result.data['action'] == 'released'
        row = store.get('c1')
        assert row['status'] == EngagementStatus.PENDING
        assert row['notifiedRunnerId'] is None

    def test_decline_by_runner_not_offered(self, coordinator, store):
        store.seed(engagementId='c1', callerId='caller-1', createdAt=T0)
        coordinator.offer('c1', ['R1'])

        assert coordinator.decline('c1', 'R2').reason == Rejection.NOT_OFFERED


class TestCreate:

    def test_create_stamps_server_time(self, coordinator, store, clock):
        result = coordinator.create('caller-1', 'Buy snacks', {'description': 'chips', 'status': 'completed'})

        assert result.ok
        row = store.get(result.engagement['engagementId'])
        assert row['status'] == EngagementStatus.PENDING
        assert row['createdAt'] == clock.now
        assert row['callerId'] == 'caller-1'
        assert row['description'] == 'chips'

    def test_create_requires_caller(self, coordinator):
        assert coordinator.create(None, 'Buy snacks').reason == Rejection.UNAUTHENTICATED

    def test_created_engagement_has_no_runner_key(self, coordinator, store):
        result = coordinator.create('caller-1', 'Buy snacks', {'runnerId': 'R9'})
        engagement_id = result.engagement['engagementId']

        assert 'runnerId' not in store.get(engagement_id)
        assert coordinator.attempt_accept(engagement_id, 'R1').ok
        assert store.get(engagement_id)['runnerId'] == 'R1'
