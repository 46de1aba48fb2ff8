"""
Proxy constants — resource types and verbs accepted by the proxy task.
Version: 1.0.0
"""

# Resource type -> id field in inbound payloads and the wrapper key the
# helpdesk API expects around write bodies ({"ticket": {...}}).
RESOURCE_CONFIGS: dict = {
    "tickets": {"id_param": "ticket_id", "body_wrapper": "ticket"},
    "users": {"id_param": "user_id", "body_wrapper": "user"},
}

PROXY_METHODS: tuple = ("get", "put", "post", "patch", "delete")

# Executed inline and answered with (status, body)
SYNC_METHODS: tuple = ("get", "delete")

# Require a request body
WRITE_METHODS: tuple = ("put", "post", "patch")

# Require a resource id
ID_METHODS: tuple = ("get", "put", "patch", "delete")
