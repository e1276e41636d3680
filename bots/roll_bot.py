"""Reference bot that plays one encounter through the REST API.

Starts combat at a goblin ambush node and plays the hero's side:
  - If a roll is pending, roll it (server-side via /rolls/auto, or locally
    and post the result with --local-dice).
  - If it's the hero's turn, attack the first monster still standing.
  - Otherwise, wait for the monsters to finish their turns.

Usage:
    1. Start the server:  uvicorn main:app --reload
    2. Run this bot:      python bots/roll_bot.py [--local-dice]

Environment variables:
    SERVER_URL: base URL of the server (default: "http://127.0.0.1:8000")
"""

import os
import random
import re
import sys
import time

import httpx

BASE_URL = os.environ.get("SERVER_URL", "http://127.0.0.1:8000")

AMBUSH_NODE = {
    "nodeId": "goblin_ambush",
    "type": "combat",
    "monsterIds": ["goblin", "goblin"],
    "victoryNode": "ambush_survived",
    "defeatNode": "ambush_fallen",
}


def main() -> None:
    """Fight the ambush until the encounter resolves."""
    local_dice = "--local-dice" in sys.argv
    rng = random.Random()
    client = httpx.Client(base_url=BASE_URL, timeout=10.0)

    print("Character:")
    resp = client.get("/character")
    resp.raise_for_status()
    sheet = resp.json()
    print(f"  {sheet['name']} (HP: {sheet['hp']}/{sheet['max_hp']}, AC {sheet['ac']})")
    if sheet["hp"] <= 0:
        print("  The hero is down; restore HP before fighting.")
        sys.exit(1)

    print("\nStarting combat...")
    resp = client.post("/combat/start", json={"adventure_id": "bot_adventure", "node": AMBUSH_NODE})
    resp.raise_for_status()
    print(f"  Phase: {resp.json()['phase']}")

    print("\n--- COMBAT ---\n")
    max_steps = 500
    steps = 0
    while steps < max_steps:
        steps += 1

        resp = client.get("/combat/state")
        resp.raise_for_status()
        state = resp.json()
        phase = state["phase"]

        if phase in ("idle", "resolved"):
            print(f"\n*** COMBAT OVER: {state['last_outcome']} ***")
            break

        if phase in ("initiative", "awaiting_roll"):
            _roll(client, rng, local_dice)
            continue

        encounter = state["encounter"]
        current = encounter["order"][encounter["turn_index"]]
        if current["side"] == "hero" and not current["unconscious"] and not encounter["awaiting_player"]:
            targets = [c for c in encounter["order"] if c["side"] == "monster" and c["alive"]]
            print(f"Round {encounter['round']} | {current['name']} (HP: {current['hp']}/{current['max_hp']})")
            if targets:
                _command(client, "/combat/attack", {"target_id": targets[0]["id"]})
            else:
                _command(client, "/combat/end-turn", None)

        time.sleep(0.2)  # Let the monsters take their turns

    print("\n--- COMBAT LOG ---\n")
    resp = client.get("/combat/log", params={"limit": 200})
    resp.raise_for_status()
    for entry in resp.json():
        print(f"  {entry['text']}")

    client.close()


def _roll(client: httpx.Client, rng: random.Random, local_dice: bool) -> None:
    """Answer the pending roll and print it."""
    resp = client.get("/rolls/pending")
    resp.raise_for_status()
    request = resp.json()
    if request is None:
        return

    if local_dice:
        result = _roll_locally(request, rng)
        resp = client.post("/rolls/result", json=result)
    else:
        resp = client.post("/rolls/auto")
    if resp.status_code != 200:
        detail = resp.json().get("detail", resp.text)
        print(f"  -> roll FAILED: {detail}")
        return
    print(f"  {request['label']}: {resp.json()['result']['total']}")


def _roll_locally(request: dict, rng: random.Random) -> dict:
    """Roll a request on this side, like a player with physical dice."""
    match = re.match(r"^(\d+)d(\d+)([+-]\d+)?$", request["expression"])
    count, sides = int(match.group(1)), int(match.group(2))
    inline = int(match.group(3)) if match.group(3) else 0
    rolls = [rng.randint(1, sides) for _ in range(count)]
    result = {
        "id": request["id"],
        "total": sum(rolls) + inline + request["modifier"],
        "rolls": rolls,
    }
    if (count, sides) == (1, 20):
        result["natural"] = rolls[0]
    return result


def _command(client: httpx.Client, path: str, payload: dict | None) -> bool:
    """Send a hero command and print the result. Returns True if accepted."""
    resp = client.post(path, json=payload) if payload is not None else client.post(path)
    if resp.status_code == 200:
        print(f"  -> {resp.json()['message']}")
        return True
    detail = resp.json().get("detail", resp.text)
    print(f"  -> FAILED: {detail}")
    return False


if __name__ == "__main__":
    main()
