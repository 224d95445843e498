import sys
import time

import requests

base = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8000"
user_id = sys.argv[2] if len(sys.argv) > 2 else "me"


def show(snapshot):
    for note in snapshot.get("notifications", []):
        if note["kind"] == "dialog":
            print(f"[{note.get('title')}] {note['message']} ({note.get('action')})")
        else:
            print(note["message"])


r = requests.post(f"{base}/screen/{user_id}/start", timeout=15)
r.raise_for_status()
snapshot = r.json()
show(snapshot)

r = requests.post(f"{base}/screen/{user_id}/dialog/ok", timeout=60)
r.raise_for_status()
snapshot = r.json()
show(snapshot)

if snapshot.get("consent_url"):
    print(f"Open this URL to grant access: {snapshot['consent_url']}")
    while snapshot["state"] == "awaiting_permission_decision":
        time.sleep(2)
        r = requests.get(f"{base}/screen/{user_id}", timeout=15)
        r.raise_for_status()
        snapshot = r.json()
        show(snapshot)

print(f"STATE {snapshot['state']} TOTAL {snapshot.get('step_total')}")
