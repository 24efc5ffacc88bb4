import os
import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-for-holddesk-api")
os.environ["HOLD_SWEEP_INTERVAL_SECONDS"] = "0"

from fastapi.testclient import TestClient

from seed_helpers import make_engine, make_session_factory, reset_schema, seed_product, seed_user

from holddesk.auth.security import create_access_token
from holddesk.db.session import get_db, get_db_transactional
from holddesk.main import app


class HoldApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = make_engine()
        cls.TestSession = make_session_factory(cls.engine)

        def override_get_db():
            db = cls.TestSession()
            try:
                yield db
            finally:
                db.close()

        def override_get_db_transactional():
            db = cls.TestSession()
            try:
                yield db
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_db_transactional] = override_get_db_transactional
        cls.client = TestClient(app)

    @classmethod
    def tearDownClass(cls) -> None:
        app.dependency_overrides.clear()
        cls.engine.dispose()

    def setUp(self) -> None:
        reset_schema(self.engine)
        session = self.TestSession()
        try:
            seller_id = seed_user(session, name="Seller", roles=("seller",))
            self.admin_id = seed_user(session, name="Admin", roles=("admin",))
            self.agent_a = seed_user(session, name="AgentA")
            self.agent_b = seed_user(session, name="AgentB")
            self.product_id = seed_product(session, owner_id=seller_id, total_qty=1)
            session.commit()
        finally:
            session.close()

    def _auth(self, user_id: int) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    def _create_hold(self, user_id: int):
        return self.client.post(
            "/holds",
            json={"product_id": self.product_id},
            headers=self._auth(user_id),
        )

    def test_health(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_requests_without_token_are_unauthorized(self) -> None:
        self.assertEqual(self.client.get("/holds").status_code, 401)
        self.assertEqual(
            self.client.get("/holds", headers={"Authorization": "Bearer nope"}).status_code,
            401,
        )

    def test_hold_conflicts_map_to_error_codes(self) -> None:
        created = self._create_hold(self.agent_a)
        self.assertEqual(created.status_code, 201)
        hold = created.json()["data"]
        self.assertEqual(hold["status"], "active")
        self.assertEqual(hold["product_id"], self.product_id)

        sold_out = self._create_hold(self.agent_b)
        self.assertEqual(sold_out.status_code, 409)
        self.assertEqual(sold_out.json()["detail"]["code"], "sold_out")

        too_early = self.client.post(
            f"/holds/{hold['id']}/extend",
            headers=self._auth(self.agent_a),
        )
        self.assertEqual(too_early.status_code, 409)
        self.assertEqual(too_early.json()["detail"]["code"], "too_early")

        foreign = self.client.get(f"/holds/{hold['id']}", headers=self._auth(self.agent_b))
        self.assertEqual(foreign.status_code, 403)
        self.assertEqual(foreign.json()["detail"]["code"], "not_owner")

        missing = self.client.get("/holds/999", headers=self._auth(self.agent_a))
        self.assertEqual(missing.status_code, 404)

    def test_convert_and_review_flow(self) -> None:
        hold = self._create_hold(self.agent_a).json()["data"]

        invalid = self.client.post(
            f"/holds/{hold['id']}/convert",
            json={"order_screenshot_path": "uploads/o.png"},
            headers=self._auth(self.agent_a),
        )
        self.assertEqual(invalid.status_code, 422)

        converted = self.client.post(
            f"/holds/{hold['id']}/convert",
            json={
                "order_screenshot_path": "uploads/o.png",
                "customer_name": "Lucia Perez",
                "amazon_profile_url": "https://www.amazon.es/gp/profile/LUCIA",
            },
            headers=self._auth(self.agent_a),
        )
        self.assertEqual(converted.status_code, 201)
        deal = converted.json()["data"]
        self.assertEqual(deal["status"], "sold_submitted")

        again = self.client.post(
            f"/holds/{hold['id']}/convert",
            json={
                "order_screenshot_path": "uploads/o.png",
                "customer_name": "Lucia Perez",
                "amazon_profile_url": "https://www.amazon.es/gp/profile/LUCIA",
            },
            headers=self._auth(self.agent_a),
        )
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["detail"]["code"], "invalid_hold")

        by_agent = self.client.post(
            f"/deals/{deal['id']}/status",
            json={"status": "approved"},
            headers=self._auth(self.agent_a),
        )
        self.assertEqual(by_agent.status_code, 403)

        approved = self.client.post(
            f"/deals/{deal['id']}/status",
            json={"status": "approved"},
            headers=self._auth(self.admin_id),
        )
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.json()["data"]["status"], "approved")

        deals = self.client.get("/deals", headers=self._auth(self.agent_a))
        self.assertEqual([row["id"] for row in deals.json()["data"]], [deal["id"]])

    def test_cancel_frees_product_for_other_agent(self) -> None:
        hold = self._create_hold(self.agent_a).json()["data"]

        cancelled = self.client.post(
            f"/holds/{hold['id']}/cancel",
            headers=self._auth(self.agent_a),
        )
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["data"]["status"], "cancelled")
        self.assertEqual(self._create_hold(self.agent_b).status_code, 201)

    def test_register_creates_pending_user_who_cannot_hold(self) -> None:
        registered = self.client.post(
            "/users/register",
            json={"name": "Marta", "email": "marta@holddesk.io"},
        )
        self.assertEqual(registered.status_code, 201)
        user = registered.json()["data"]
        self.assertEqual(user["status"], "pending")

        blocked = self._create_hold(user["id"])
        self.assertEqual(blocked.status_code, 403)
        self.assertEqual(blocked.json()["detail"]["code"], "forbidden")

        me = self.client.get("/users/me", headers=self._auth(user["id"]))
        self.assertEqual(me.json()["data"]["email"], "marta@holddesk.io")

    def test_patch_product_with_null_quantity_is_unprocessable(self) -> None:
        response = self.client.patch(
            f"/products/{self.product_id}",
            json={"total_qty": None},
            headers=self._auth(self.admin_id),
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["code"], "validation_error")

        product = self.client.get(
            f"/products/{self.product_id}",
            headers=self._auth(self.admin_id),
        )
        self.assertEqual(product.json()["data"]["total_qty"], 1)

    def test_only_admin_can_force_expiry(self) -> None:
        self.assertEqual(
            self.client.post("/admin/holds/expire", headers=self._auth(self.agent_a)).status_code,
            403,
        )
        response = self.client.post("/admin/holds/expire", headers=self._auth(self.admin_id))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"expired_count": 0})


if __name__ == "__main__":
    unittest.main()
