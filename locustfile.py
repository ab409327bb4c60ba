from locust import HttpUser, task, between
import os
import random

# Wallets from env (comma-separated); defaults are valid public keys with no payments
wallets = [
    w.strip()
    for w in os.getenv(
        "LOAD_WALLETS",
        "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka,7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ",
    ).split(",")
    if w.strip()
]


class X402ChatUser(HttpUser):
    wait_time = between(1, 2)

    @task(3)
    def chat_without_payment(self):
        # no signature: must answer 402 without touching upstream providers
        with self.client.post(
            "/api/x402-chatbot",
            json={"message": "What's the bitcoin price?", "walletAddress": random.choice(wallets)},
            catch_response=True,
        ) as resp:
            if resp.status_code == 402:
                resp.success()
            else:
                resp.failure(f"expected 402, got {resp.status_code}")

    @task(1)
    def check_balance(self):
        self.client.post(
            "/api/x402-chatbot",
            json={"message": "balance", "walletAddress": random.choice(wallets), "checkBalance": True},
        )
