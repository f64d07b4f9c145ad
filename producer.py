"""Player telemetry generator.

Simulates a game server's per-player telemetry with configurable normal and
abusive player profiles.  Each player emits three kinds of events on its own
schedule: gated remote requests (BuyItem, PlaceItem, ...), actions, and
movement samples.  Disconnects are emitted when the generator stops.

Usage:
    python producer.py
    python producer.py --normal 20 --speed-hackers 2 --macro-bots 2 --spammers 1
    python producer.py --topic player-telemetry
"""

import argparse
import heapq
import json
import math
import random
import signal
import time
import uuid
from dataclasses import dataclass, field

from confluent_kafka import Producer
from confluent_kafka.admin import AdminClient, NewTopic

ENDPOINTS = {
    "critical": ["BuyItem", "PurchaseItem", "CloneItem"],
    "standard": ["PlaceItem", "MoveItem", "RotateItem", "ChangeColor", "RemoveItem"],
    "frequent": ["InteractWithItem", "GetInventory"],
}
ACTIONS = ["jump", "interact", "open_inventory", "place", "rotate", "chat", "emote"]
WALK_SPEED = 16.0

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down generator...")
    running = False


signal.signal(signal.SIGINT, _shutdown)   # Ctrl+C (local dev)
signal.signal(signal.SIGTERM, _shutdown)  # docker stop / k8s pod termination


# ---------------------------------------------------------------------------
# Player profiles
# ---------------------------------------------------------------------------

@dataclass
class Player:
    subject_id: str
    role: str  # normal | speed_hacker | macro_bot | spammer
    actions_per_sec: float
    requests_per_min: float
    speed: float
    jitter: float  # 0 = perfectly regular timing
    position: list = field(default_factory=lambda: [0.0, 0.0, 0.0])
    heading: float = 0.0
    step: int = 0
    path_step: int = 0


def _create_players(n_normal, n_speed_hackers, n_macro_bots, n_spammers):
    players = []
    uid = 0

    # --- Normal players: jittery timing, walking speed, wandering ---
    for _ in range(n_normal):
        uid += 1
        players.append(Player(
            subject_id=f"player_{uid:04d}", role="normal",
            actions_per_sec=random.uniform(0.3, 1.5),
            requests_per_min=random.uniform(4, 20),
            speed=random.uniform(8, WALK_SPEED), jitter=0.6,
        ))

    # --- Speed hackers: normal input, impossible movement ---
    for _ in range(n_speed_hackers):
        uid += 1
        players.append(Player(
            subject_id=f"player_{uid:04d}", role="speed_hacker",
            actions_per_sec=random.uniform(0.5, 1.5),
            requests_per_min=random.uniform(5, 20),
            speed=random.uniform(80, 160), jitter=0.5,
        ))

    # --- Macro bots: fixed-interval action loop, replayed square path ---
    for _ in range(n_macro_bots):
        uid += 1
        players.append(Player(
            subject_id=f"player_{uid:04d}", role="macro_bot",
            actions_per_sec=10.0, requests_per_min=30,
            speed=WALK_SPEED, jitter=0.0,
        ))

    # --- Spammers: hammering currency endpoints ---
    for _ in range(n_spammers):
        uid += 1
        players.append(Player(
            subject_id=f"player_{uid:04d}", role="spammer",
            actions_per_sec=random.uniform(0.5, 1.0),
            requests_per_min=random.uniform(200, 400),
            speed=random.uniform(4, 10), jitter=0.4,
        ))

    return players


# ---------------------------------------------------------------------------
# Event generation
# ---------------------------------------------------------------------------

def _interval(rate_per_sec: float, jitter: float) -> float:
    base = 1.0 / rate_per_sec
    if jitter <= 0:
        return base
    return max(0.01, random.gauss(base, base * jitter))


def _action_event(player: Player, ts: float) -> dict:
    if player.role == "macro_bot":
        action = ACTIONS[player.step % 3]
        player.step += 1
    else:
        action = random.choice(ACTIONS)
    return {
        "event_type": "action",
        "timestamp": ts,
        "subject_id": player.subject_id,
        "action_type": action,
        "data": {"slot": random.randint(1, 9)},
    }


def _movement_event(player: Player, ts: float, dt: float) -> dict:
    if player.role == "macro_bot":
        # Square path: four headings, ten samples each.
        player.heading = (player.path_step // 10 % 4) * math.pi / 2
        player.path_step += 1
    else:
        player.heading += random.uniform(-0.6, 0.6)

    vx = math.cos(player.heading) * player.speed
    vz = math.sin(player.heading) * player.speed
    player.position[0] += vx * dt
    player.position[2] += vz * dt
    return {
        "event_type": "movement",
        "timestamp": ts,
        "subject_id": player.subject_id,
        "position": [round(c, 3) for c in player.position],
        "velocity": [round(vx, 3), 0.0, round(vz, 3)],
    }


def _request_event(player: Player, ts: float) -> dict:
    if player.role == "spammer":
        endpoint = random.choice(ENDPOINTS["critical"])
    else:
        tier = random.choices(["critical", "standard", "frequent"], [1, 4, 6])[0]
        endpoint = random.choice(ENDPOINTS[tier])
    return {
        "event_type": "request",
        "timestamp": ts,
        "request_id": f"req_{uuid.uuid4().hex[:12]}",
        "subject_id": player.subject_id,
        "endpoint": endpoint,
    }


_MOVEMENT_INTERVAL = 0.25


def _next(player: Player, kind: str) -> float:
    if kind == "action":
        return _interval(player.actions_per_sec, player.jitter)
    if kind == "request":
        return _interval(player.requests_per_min / 60.0, player.jitter or 0.3)
    return _MOVEMENT_INTERVAL


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

def _ensure_topics(bootstrap_servers, topics):
    """Create Kafka topics if they don't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    new_topics = [NewTopic(t, num_partitions=3, replication_factor=3) for t in topics]
    fs = admin.create_topics(new_topics)
    for topic, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{topic}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{topic}' already exists")
            else:
                raise


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Player telemetry generator")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="player-telemetry")
    parser.add_argument("--normal", type=int, default=8)
    parser.add_argument("--speed-hackers", type=int, default=1)
    parser.add_argument("--macro-bots", type=int, default=1)
    parser.add_argument("--spammers", type=int, default=1)
    args = parser.parse_args()

    players = _create_players(
        args.normal, args.speed_hackers, args.macro_bots, args.spammers,
    )

    print(f"Generating to topic '{args.topic}'")
    print(f"Players: {len(players)} total")
    for p in players:
        print(f"  {p.subject_id}  {p.role:<13s} ~{p.actions_per_sec:>5.1f} aps  "
              f"~{p.requests_per_min:>5.0f} rpm  speed={p.speed:.0f}")

    _ensure_topics(args.bootstrap_servers, [args.topic])

    producer = Producer({
        "bootstrap.servers": args.bootstrap_servers,
        "acks": "all",
        "client.id": "player-telemetry-generator",
    })

    # Every player schedules its own actions, requests and movement; the
    # heap yields whichever event is due next across all players.
    start = time.time()
    schedule = []
    for i, p in enumerate(players):
        for kind in ("action", "request", "movement"):
            heapq.heappush(schedule, (start + _next(p, kind), i, kind))

    count = 0
    while running:
        due, i, kind = heapq.heappop(schedule)
        delay = due - time.time()
        if delay > 0:
            time.sleep(delay)

        player = players[i]
        if kind == "action":
            event = _action_event(player, due)
        elif kind == "request":
            event = _request_event(player, due)
        else:
            event = _movement_event(player, due, _MOVEMENT_INTERVAL)

        producer.produce(
            topic=args.topic,
            key=player.subject_id.encode(),
            value=json.dumps(event),
        )
        producer.poll(0)
        heapq.heappush(schedule, (due + _next(player, kind), i, kind))

        count += 1
        if count % 500 == 0:
            print(f"  ... {count} events produced")

    for p in players:
        producer.produce(
            topic=args.topic,
            key=p.subject_id.encode(),
            value=json.dumps({
                "event_type": "disconnect",
                "timestamp": time.time(),
                "subject_id": p.subject_id,
            }),
        )
    producer.flush()
    print(f"Done. {count} events produced.")


if __name__ == "__main__":
    main()
