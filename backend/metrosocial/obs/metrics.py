"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

import math

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"metrosocial_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"metrosocial_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"metrosocial_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"metrosocial_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

PRESENCE_ONLINE = Gauge(
	"metrosocial_presence_online_gauge",
	"Users currently marked online",
)

PRESENCE_TRANSITIONS = Counter(
	"metrosocial_presence_transitions_total",
	"Presence state changes",
	["state", "reason"],
)

LOCATION_REPORTS = Counter(
	"metrosocial_location_reports_total",
	"Location reports accepted",
)

PROXIMITY_QUERIES = Counter(
	"metrosocial_proximity_queries_total",
	"Nearby proximity queries",
	["radius"],
)

PROXIMITY_RESULTS = Summary(
	"metrosocial_proximity_results_avg",
	"Nearby query result sizes",
)

POST_MUTATIONS = Counter(
	"metrosocial_post_mutations_total",
	"Post store mutations by kind and outcome",
	["kind", "result"],
)

POSTS_STORED = Gauge(
	"metrosocial_posts_stored",
	"Posts currently held by the in-memory store",
)

POSTS_EVICTED = Counter(
	"metrosocial_posts_evicted_total",
	"Posts dropped by the retention cap",
)

FANOUT_DELIVERIES = Counter(
	"metrosocial_fanout_deliveries_total",
	"Fan-out deliveries per event and outcome",
	["event", "result"],
)

RATE_LIMITED_EVENTS = Counter(
	"metrosocial_rate_limited_total",
	"Requests rejected by rate limiting",
	["kind"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def presence_changed(state: str, reason: str, online_count: int) -> None:
	PRESENCE_TRANSITIONS.labels(state=state, reason=reason).inc()
	PRESENCE_ONLINE.set(float(online_count))


def inc_location_report() -> None:
	LOCATION_REPORTS.inc()


RADIUS_BUCKETS = (0, 50, 200, 1000, 5000, 50000)


def radius_bucket(radius: float) -> str:
	"""Upper bound of the bucket holding ``radius``; keeps the label set small."""
	if math.isnan(radius):
		return "invalid"
	for bound in RADIUS_BUCKETS:
		if radius <= bound:
			return str(bound)
	return "inf"


def inc_proximity_query(radius: float, results: int) -> None:
	PROXIMITY_QUERIES.labels(radius=radius_bucket(radius)).inc()
	PROXIMITY_RESULTS.observe(results)


def inc_post_mutation(kind: str, result: str = "ok") -> None:
	POST_MUTATIONS.labels(kind=kind, result=result).inc()


def set_posts_stored(count: int) -> None:
	POSTS_STORED.set(float(count))


def inc_posts_evicted(count: int) -> None:
	if count > 0:
		POSTS_EVICTED.inc(count)


def inc_fanout_delivery(event: str, result: str) -> None:
	FANOUT_DELIVERIES.labels(event=event, result=result).inc()
