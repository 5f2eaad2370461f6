from locust import HttpUser, task, between
import random

ADDRESS = {"address": "1 Load St", "city": "Testville", "postal_code": "00000", "country": "US"}


class ShopperUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Register a customer for this simulated client
        uname = f"user_{random.randint(1, 1_000_000)}"
        r = self.client.post(
            "/api/auth/register",
            json={"name": uname, "email": f"{uname}@load.test", "password": "loadpass"},
        )
        self.headers = {}
        if r.status_code == 201:
            self.headers = {"Authorization": f"Bearer {r.json()['access_token']}"}

    def _product_ids(self):
        r = self.client.get("/api/products")
        return [p["id"] for p in r.json() if p["count_in_stock"] > 0] if r.status_code == 200 else []

    @task(3)
    def checkout(self):
        if not self.headers:
            return
        products = self._product_ids()
        if not products:
            return
        order = self.client.post(
            "/api/orders",
            json={
                "order_items": [{"product": random.choice(products), "quantity": 1}],
                "shipping_address": ADDRESS,
                "payment_method": "Stripe",
            },
            headers=self.headers,
        )
        if order.status_code != 201:
            return
        order_id = order.json()["id"]
        key = f"load-{order_id}"
        intent = self.client.post(
            "/api/payments/create-payment-intent",
            json={"order_id": order_id},
            headers={**self.headers, "Idempotency-Key": key},
        )
        if intent.status_code != 201:
            return
        self.client.put(
            f"/api/orders/{order_id}/pay",
            json={"id": intent.json()["id"], "status": "succeeded"},
            headers=self.headers,
        )

    @task(1)
    def my_orders(self):
        if self.headers:
            self.client.get("/api/orders/myorders", headers=self.headers)
