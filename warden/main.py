"""Abuse-prevention service — consumes player telemetry, gates, scores.

Consumes from player-telemetry, keyed by subject_id so one subject always
lands on the same partition (and therefore the same engine instance).
Event types:

  request     gated by the rate limiter; the decision goes to gate-decisions
  action      buffered for the action-frequency / timing / sequence scorers
  movement    buffered for the movement / velocity scorers
  disconnect  evicts the subject's state

The poll loop doubles as the scheduler: engine.tick() runs after every poll
and decides for itself whether a micro, macro or eviction pass is due.
Anomaly events are produced to the anomalies topic.  Prometheus metrics are
served on --metrics-port.

Usage:
    python -m warden.main
    python -m warden.main --bootstrap-servers kafka-1:29092 --privileged admin_01
"""

import argparse
import json
import signal
import sys
import time

from confluent_kafka import Consumer, KafkaError, Producer
from confluent_kafka.admin import AdminClient, NewTopic
from prometheus_client import start_http_server

from warden import metrics
from warden.config import DEFAULT_CONFIG_PATH, load_config
from warden.engine import AbusePreventionEngine
from warden.limiter.policies import DEFAULT_TABLE_PATH, load_policy_table

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down abuse-prevention service...")
    running = False


signal.signal(signal.SIGINT, _shutdown)
signal.signal(signal.SIGTERM, _shutdown)


def _ensure_topics(bootstrap_servers, topics):
    """Create output topics if they don't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    fs = admin.create_topics(
        [NewTopic(t, num_partitions=3, replication_factor=3) for t in topics]
    )
    for t, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{t}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{t}' already exists")
            else:
                raise


def handle_event(engine: AbusePreventionEngine, event: dict) -> dict | None:
    """Apply one telemetry event.  Returns a gate decision for requests."""
    event_type = event.get("event_type")
    subject_id = str(event.get("subject_id") or "")
    ts = event.get("timestamp")
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        ts = None

    if event_type == "request":
        decision = engine.check_and_record(
            subject_id, str(event.get("endpoint") or ""), now=ts,
        )
        return {
            "subject_id": subject_id,
            "endpoint": str(event.get("endpoint") or ""),
            "request_id": event.get("request_id"),
            "allowed": decision.allowed,
            "reason": decision.reason,
            "timestamp": ts,
        }
    elif event_type == "action":
        data = event.get("data")
        engine.record_action(
            subject_id, str(event.get("action_type") or ""),
            data if isinstance(data, dict) else None, now=ts,
        )
    elif event_type == "movement":
        engine.record_movement(
            subject_id,
            event.get("position"),
            event.get("velocity") or (0.0, 0.0, 0.0),
            now=ts,
        )
    elif event_type == "disconnect":
        engine.disconnect(subject_id)
    return None


def main():
    parser = argparse.ArgumentParser(description="Abuse-prevention service")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--input-topic", default="player-telemetry")
    parser.add_argument("--decision-topic", default="gate-decisions")
    parser.add_argument("--anomaly-topic", default="anomalies")
    parser.add_argument("--group-id", default="abuse-prevention")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH))
    parser.add_argument("--endpoints", default=str(DEFAULT_TABLE_PATH))
    parser.add_argument(
        "--privileged", action="append", default=[],
        help="Subject id exempt from default limits (repeatable)",
    )
    parser.add_argument(
        "--metrics-port", type=int, default=9090, help="Prometheus metrics HTTP port",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    table = load_policy_table(args.endpoints)
    privileged = frozenset(args.privileged)

    producer = Producer({"bootstrap.servers": args.bootstrap_servers})

    def on_anomaly(subject_id, score, event):
        producer.produce(
            args.anomaly_topic,
            key=subject_id.encode(),
            value=json.dumps(event).encode(),
        )
        print(f"ANOMALY  subject={subject_id:<12s} score={score:.2f}  "
              f"category={event['behavior_category']:<16s} "
              f"scores={event['scores']}")

    engine = AbusePreventionEngine(
        config, table,
        is_privileged=lambda subject_id: subject_id in privileged,
        on_anomaly=on_anomaly,
        # Telemetry carries wall-clock timestamps, so tick on the same clock.
        clock=time.time,
    )

    _ensure_topics(args.bootstrap_servers, [args.decision_topic, args.anomaly_topic])
    start_http_server(args.metrics_port)
    print(f"Prometheus metrics server started on :{args.metrics_port}")

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": args.group_id,
        "auto.offset.reset": "latest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.input_topic])

    consumed = 0
    denied = 0

    print(f"Abuse-prevention service started  input={args.input_topic}  "
          f"endpoints={len(table.endpoints)}  privileged={len(privileged)}")

    try:
        while running:
            msg = consumer.poll(0.2)
            engine.tick()
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                metrics.decode_errors_total.inc()
                print(f"Consumer error: {msg.error()}", file=sys.stderr)
                continue

            try:
                event = json.loads(msg.value().decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                metrics.decode_errors_total.inc()
                continue

            consumed += 1
            metrics.telemetry_events_total.labels(
                event_type=event.get("event_type", "unknown"),
            ).inc()

            decision = handle_event(engine, event)
            if decision is not None:
                producer.produce(
                    args.decision_topic,
                    key=str(decision["subject_id"]).encode(),
                    value=json.dumps(decision).encode(),
                )
                if not decision["allowed"]:
                    denied += 1
                    print(f"DENIED   subject={decision['subject_id']:<12s} "
                          f"endpoint={decision['endpoint']:<18s} {decision['reason']}")

            producer.poll(0)
            if consumed % 1000 == 0:
                producer.flush()
                stats = engine.stats()
                print(f"  ... {consumed} events consumed, {denied} denied, "
                      f"{stats['subjects_tracked']} subjects, "
                      f"{stats['throttled_subjects']} throttled")
    finally:
        producer.flush()
        consumer.close()
        print(f"Done. {consumed} events consumed, {denied} requests denied.")


if __name__ == "__main__":
    main()
