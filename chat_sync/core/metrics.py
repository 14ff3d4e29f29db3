"""
Prometheus metrics for the sync engine.

Counters cover the write paths (messages, uploads, index fan-out, presence);
the gauge tracks live subscriptions so leaked listeners show up as a number
that never returns to zero.
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Message Metrics
# ============================================================================

messages_sent_total = Counter(
    'chat_sync_messages_sent_total',
    'Total number of messages appended to a conversation log',
    ['kind']
)

messages_deleted_total = Counter(
    'chat_sync_messages_deleted_total',
    'Total number of messages soft-deleted'
)

message_send_failures_total = Counter(
    'chat_sync_message_send_failures_total',
    'Total number of sends aborted before the message was written',
    ['reason']
)

message_notifications_total = Counter(
    'chat_sync_message_notifications_total',
    'Total number of new-message side effects fired by the stream synchronizer'
)

# ============================================================================
# Upload Metrics
# ============================================================================

uploads_total = Counter(
    'chat_sync_uploads_total',
    'Total number of media uploads',
    ['kind', 'status']
)

# ============================================================================
# Fan-out / Presence Metrics
# ============================================================================

index_writes_total = Counter(
    'chat_sync_index_writes_total',
    'Total number of per-participant conversation index writes',
    ['operation', 'status']
)

presence_writes_total = Counter(
    'chat_sync_presence_writes_total',
    'Total number of presence writes (login, heartbeat, offline)',
    ['operation', 'status']
)

# ============================================================================
# Subscription Metrics
# ============================================================================

subscriptions_active = Gauge(
    'chat_sync_subscriptions_active',
    'Number of live store subscriptions',
    ['kind']
)

# ============================================================================
# Store Operation Metrics
# ============================================================================

store_operations_total = Counter(
    'chat_sync_store_operations_total',
    'Total number of document store operations',
    ['backend', 'operation', 'status']
)

store_operation_duration_seconds = Histogram(
    'chat_sync_store_operation_duration_seconds',
    'Duration of document store operations in seconds',
    ['backend', 'operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)
