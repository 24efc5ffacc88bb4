import sys
import unittest
from datetime import timedelta
from pathlib import Path
from unittest import mock

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from seed_helpers import (
    NOW,
    make_engine,
    make_session_factory,
    reset_schema,
    seed_product,
    seed_user,
)

from holddesk.db.models import Hold
from holddesk.services import holds_s
from holddesk.services.workflow_errors import (
    AlreadyExtendedError,
    ConflictError,
    HoldExpiredError,
    InvalidStateError,
    NotFoundError,
    NotOwnerError,
    TooEarlyError,
)


class HoldExpiryAndExtensionTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = make_engine()
        cls.TestSession = make_session_factory(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        cls.engine.dispose()

    def setUp(self) -> None:
        reset_schema(self.engine)
        self.session = self.TestSession()
        seller_id = seed_user(self.session, name="Seller", roles=("seller",))
        self.agent_a = seed_user(self.session, name="AgentA")
        self.agent_b = seed_user(self.session, name="AgentB")
        self.product_id = seed_product(self.session, owner_id=seller_id, total_qty=3)
        self.session.commit()

    def tearDown(self) -> None:
        self.session.close()

    def _hold(self, agent_id: int | None = None) -> dict:
        hold = holds_s.create_hold(
            agent_id or self.agent_a,
            self.product_id,
            self.session,
            now=NOW,
        )
        self.session.commit()
        return hold

    def _status(self, hold_id: int) -> str:
        self.session.expire_all()
        return self.session.query(Hold).filter(Hold.id == hold_id).one().status

    def test_sweep_expires_due_holds_once(self) -> None:
        first = self._hold()
        second = self._hold(self.agent_b)

        self.assertEqual(
            holds_s.expire_stale_holds(self.session, now=NOW + timedelta(minutes=29)),
            0,
        )
        self.assertEqual(
            holds_s.expire_stale_holds(self.session, now=NOW + timedelta(minutes=30)),
            2,
        )
        self.session.commit()
        self.assertEqual(
            holds_s.expire_stale_holds(self.session, now=NOW + timedelta(minutes=31)),
            0,
        )
        self.assertEqual(self._status(first["id"]), "expired")
        self.assertEqual(self._status(second["id"]), "expired")

    def test_sweep_leaves_converted_and_cancelled_holds_alone(self) -> None:
        converted = self._hold()
        cancelled = self._hold(self.agent_b)
        self.session.query(Hold).filter(Hold.id == converted["id"]).update(
            {Hold.status: "converted"},
            synchronize_session="fetch",
        )
        holds_s.cancel_hold(self.agent_b, cancelled["id"], self.session, now=NOW)
        self.session.commit()

        swept = holds_s.expire_stale_holds(self.session, now=NOW + timedelta(hours=1))

        self.assertEqual(swept, 0)
        self.assertEqual(self._status(converted["id"]), "converted")
        self.assertEqual(self._status(cancelled["id"]), "cancelled")

    def test_request_paths_only_sweep_their_own_holds(self) -> None:
        other_product = seed_product(
            self.session,
            owner_id=seed_user(self.session, name="OtherSeller", roles=("seller",)),
            title="Desk Lamp",
        )
        admin_id = seed_user(self.session, name="Admin", roles=("admin",))
        self.session.commit()
        first = self._hold()
        second = self._hold(self.agent_b)
        later = NOW + timedelta(minutes=31)

        holds_s.create_hold(self.agent_b, other_product, self.session, now=later)
        self.session.commit()
        self.assertEqual(self._status(first["id"]), "active")
        self.assertEqual(self._status(second["id"]), "active")

        holds_s.list_holds(self.agent_a, self.session, now=later)
        self.session.commit()
        self.assertEqual(self._status(first["id"]), "expired")
        self.assertEqual(self._status(second["id"]), "active")

        holds_s.list_holds(admin_id, self.session, now=later)
        self.session.commit()
        self.assertEqual(self._status(second["id"]), "expired")

    def test_extend_before_final_minute_is_too_early(self) -> None:
        hold = self._hold()

        with self.assertRaises(TooEarlyError):
            holds_s.extend_hold(
                self.agent_a,
                hold["id"],
                self.session,
                now=NOW + timedelta(minutes=10),
            )
        with self.assertRaises(TooEarlyError):
            holds_s.extend_hold(
                self.agent_a,
                hold["id"],
                self.session,
                now=hold["expires_at"] - timedelta(seconds=61),
            )

    def test_extend_in_final_minute_adds_five_minutes_once(self) -> None:
        hold = self._hold()
        deadline = hold["expires_at"]

        before = holds_s.hold_to_dict(
            self.session.query(Hold).filter(Hold.id == hold["id"]).one(),
            deadline - timedelta(seconds=30),
        )
        self.assertTrue(before["can_extend"])

        extended = holds_s.extend_hold(
            self.agent_a,
            hold["id"],
            self.session,
            now=deadline - timedelta(seconds=30),
        )
        self.session.commit()

        self.assertTrue(extended["extended"])
        self.assertEqual(extended["expires_at"], deadline + timedelta(minutes=5))
        self.assertFalse(extended["can_extend"])

        with self.assertRaises(AlreadyExtendedError):
            holds_s.extend_hold(
                self.agent_a,
                hold["id"],
                self.session,
                now=deadline + timedelta(minutes=4, seconds=30),
            )

    def test_extend_exactly_sixty_seconds_before_deadline_is_allowed(self) -> None:
        hold = self._hold()

        extended = holds_s.extend_hold(
            self.agent_a,
            hold["id"],
            self.session,
            now=hold["expires_at"] - timedelta(seconds=60),
        )

        self.assertEqual(extended["expires_at"], hold["expires_at"] + timedelta(minutes=5))

    def test_extend_past_deadline_is_rejected_even_before_sweep(self) -> None:
        hold = self._hold()

        with self.assertRaises(HoldExpiredError):
            holds_s.extend_hold(
                self.agent_a,
                hold["id"],
                self.session,
                now=hold["expires_at"],
            )
        self.assertEqual(self._status(hold["id"]), "active")

    def test_extend_cancelled_hold_is_invalid_state(self) -> None:
        hold = self._hold()
        holds_s.cancel_hold(self.agent_a, hold["id"], self.session, now=NOW)

        with self.assertRaises(InvalidStateError) as ctx:
            holds_s.extend_hold(
                self.agent_a,
                hold["id"],
                self.session,
                now=hold["expires_at"] - timedelta(seconds=10),
            )
        self.assertEqual(ctx.exception.code, "invalid_state")

    def test_extend_checks_ownership_and_existence(self) -> None:
        hold = self._hold()
        last_minute = hold["expires_at"] - timedelta(seconds=30)

        with self.assertRaises(NotFoundError):
            holds_s.extend_hold(self.agent_a, 999, self.session, now=last_minute)
        with self.assertRaises(NotOwnerError):
            holds_s.extend_hold(self.agent_b, hold["id"], self.session, now=last_minute)

    def test_concurrent_extension_loses_with_conflict(self) -> None:
        hold = self._hold()
        stale = self.session.query(Hold).filter(Hold.id == hold["id"]).one()
        self.assertFalse(stale.extended)

        self.session.query(Hold).filter(Hold.id == hold["id"]).update(
            {
                Hold.extended: True,
                Hold.expires_at: hold["expires_at"] + timedelta(minutes=5),
            },
            synchronize_session=False,
        )

        with mock.patch.object(holds_s, "_lock_hold", return_value=stale):
            with self.assertRaises(ConflictError):
                holds_s.extend_hold(
                    self.agent_a,
                    hold["id"],
                    self.session,
                    now=hold["expires_at"] - timedelta(seconds=30),
                )

    def test_get_hold_reports_expiry_lazily(self) -> None:
        hold = self._hold()

        viewed = holds_s.get_hold(
            hold["id"],
            self.agent_a,
            self.session,
            now=hold["expires_at"] + timedelta(seconds=1),
        )

        self.assertEqual(viewed["status"], "expired")
        self.assertEqual(viewed["seconds_remaining"], 0)
        self.assertEqual(viewed["released_at"], hold["expires_at"])


if __name__ == "__main__":
    unittest.main()
