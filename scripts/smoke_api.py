"""
Smoke checks against a running API server.
Start the server first: visibility-api
Then run: python scripts/smoke_api.py
"""

import json
import os

import requests

BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


def _banner(title):
    print("\n" + "=" * 50)
    print(f"CHECK: {title}")
    print("=" * 50)


def _show(response):
    print(f"Status Code: {response.status_code}")
    print(f"Response: {json.dumps(response.json(), indent=2, default=str)[:1500]}")


def check_health():
    _banner("Health")
    response = requests.get(f"{BASE_URL}/health")
    _show(response)
    return response.status_code == 200


def check_login_invalid():
    _banner("Login with an unknown key")
    response = requests.post(f"{BASE_URL}/api/auth/login", json={"api_key": "invalid-key-123"})
    _show(response)
    return response.status_code == 401


def login(api_key):
    _banner("Login")
    response = requests.post(f"{BASE_URL}/api/auth/login", json={"api_key": api_key})
    _show(response)
    if response.status_code == 200:
        return response.json().get("token")
    return None


def check_collection_without_token():
    _banner("Collection without token")
    response = requests.get(f"{BASE_URL}/api/collections/challenges")
    _show(response)
    return response.status_code == 401


def check_collection(token, name, **params):
    _banner(f"Collection '{name}' {params or ''}")
    response = requests.get(
        f"{BASE_URL}/api/collections/{name}",
        headers={"Authorization": f"Bearer {token}"},
        params=params,
    )
    data = response.json()
    if response.status_code == 200:
        print(f"Level: {data['level']}")
        print(f"Rows: {len(data['data'])} of {data['count']} (page {data['page']}/{data['total_pages']})")
    else:
        _show(response)
    return response.status_code == 200


def check_strategic(token, name, plan_ids):
    _banner(f"Strategic '{name}' plans={plan_ids}")
    response = requests.get(
        f"{BASE_URL}/api/collections/{name}/strategic",
        headers={"Authorization": f"Bearer {token}"},
        params={"plan_ids": plan_ids},
    )
    _show(response)
    return response.status_code == 200


def check_logout(token):
    _banner("Logout")
    response = requests.post(f"{BASE_URL}/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    _show(response)
    return response.status_code == 200


def main():
    print(f"Base URL: {BASE_URL}")
    print("Make sure the API server is running!")

    api_key = input("Enter an access key: ").strip()
    if not api_key:
        print("ERROR: access key is required")
        return

    results = {
        "Health": check_health(),
        "Login Invalid": check_login_invalid(),
        "No Token": check_collection_without_token(),
    }

    token = login(api_key)
    results["Login"] = token is not None
    if token:
        results["Challenges"] = check_collection(token, "challenges")
        results["Pilots page 2"] = check_collection(token, "pilots", page=2, page_size=10)
        results["Budgets"] = check_collection(token, "budgets", sort="-fiscal_year")
        results["Strategic pilots"] = check_strategic(token, "pilots", "PLAN-1")
        results["Logout"] = check_logout(token)
    else:
        print("\nERROR: Could not login. Remaining checks skipped.")

    print("\n" + "=" * 50)
    passed = sum(1 for v in results.values() if v)
    for name, ok in results.items():
        print(f"{'✓ PASS' if ok else '✗ FAIL'}: {name}")
    print(f"\nTotal: {passed}/{len(results)} checks passed")


if __name__ == "__main__":
    main()
