import time
import subprocess
import httpx
import sys
import os
import signal
from decimal import Decimal

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
HEADERS = {"X-Operator": "persistence-check"}
APP = "poultry_backend.app.main:app"


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def start_server(echo=False):
    env = {**os.environ, "DB_ECHO": "True"} if echo else None
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", APP, "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
    )


def find_customer(name):
    resp = httpx.get(f"{BASE_URL}{API_PREFIX}/customers", params={"search": name})
    resp.raise_for_status()
    for customer in resp.json()["customers"]:
        if customer["customer_name"] == name:
            return customer
    return None


def run_verification():
    name = "Persistence Check Customer"

    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server(echo=True)

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        # 2. Create a customer and move its balance
        print("\n--- [Step 2] Creating Customer and Adjusting Balance ---")
        customer = find_customer(name)
        if customer is not None:
            print("⚠️ Customer already exists (persistence working from previous run?)")
        else:
            resp = httpx.post(f"{BASE_URL}{API_PREFIX}/customers", json={"customer_name": name}, headers=HEADERS)
            if resp.status_code != 201:
                print(f"❌ Customer creation failed: {resp.status_code} {resp.text}")
                raise Exception("Customer creation failed")
            customer = resp.json()
            print("✅ Customer Created")

        resp = httpx.post(
            f"{BASE_URL}{API_PREFIX}/customers/{customer['id']}/adjustments",
            json={"amount": "125.50", "reason": "persistence check"},
            headers=HEADERS,
        )
        if resp.status_code != 201:
            print(f"❌ Adjustment failed: {resp.status_code} {resp.text}")
            raise Exception("Adjustment failed")
        expected = Decimal(resp.json()["balance_after"])
        print(f"✅ Balance is now {expected}")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        proc.send_signal(signal.SIGTERM)
        proc.wait()

    time.sleep(2)  # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        # 4. Balance must survive the restart
        print("\n--- [Step 5] Reading Balance (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/customers/{customer['id']}/balance")
        if resp.status_code == 200 and Decimal(resp.json()["balance"]) == expected:
            print("✅ Balance Persisted!")
        else:
            print(f"❌ Balance mismatch (Persistence Issue?): {resp.status_code} {resp.text}")
            raise Exception("Balance lost after restart")

        # 5. Audit trail must survive too
        print("\n--- [Step 6] Verifying Audit Trail ---")
        resp = httpx.get(
            f"{BASE_URL}{API_PREFIX}/admin/ops/audit-logs",
            params={"customer_id": customer["id"], "action": "DEBT_ADJUSTED"},
        )
        if resp.status_code == 200 and resp.json():
            print(f"✅ {len(resp.json())} adjustment audit entries found")
        else:
            print(f"❌ Audit Check Failed: {resp.status_code}")

    finally:
        print("\n--- [Step 7] Stopping Server ---")
        proc2.send_signal(signal.SIGTERM)
        proc2.wait()


if __name__ == "__main__":
    run_verification()
