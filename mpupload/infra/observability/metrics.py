from prometheus_client import Counter, Histogram

# status: succeeded | failed
PARTS = Counter(
    "multipart_parts_total",
    "Multipart part uploads by outcome",
    ["status"],
)

PART_LATENCY = Histogram(
    "multipart_part_upload_duration_seconds",
    "Part upload latency in seconds",
)

# outcome: committed | commit_refused | aborted
SESSIONS = Counter(
    "multipart_sessions_total",
    "Finalized multipart upload sessions by outcome",
    ["outcome"],
)
