"""
Constants used throughout the vault webhook.

This module defines the fixed values the webhook relies on:
- Custom resource coordinates for DatabaseCredentialBinding
- Names and paths of the injected volume and sidecars
- Fixed sidecar arguments and resource quantities
"""

# DatabaseCredentialBinding custom resource
BINDING_GROUP = "vaultwebhook.uswitch.com"
BINDING_PLURAL = "databasecredentialbindings"

# Default output path when a binding does not declare one
DEFAULT_OUTPUT_PATH = "/etc/database"

# Shared volume holding the fetched credentials
CREDS_VOLUME_NAME = "vault-creds"
CREDS_OUTPUT_DIR = "/creds/output"
CREDS_TEMPLATE_DIR = "/creds/template"
COMPLETED_PATH = "/creds/output/completed"

# Sidecar naming
SIDECAR_NAME_PREFIX = "vault-creds-"
INIT_CONTAINER_SUFFIX = "-init"

# Sidecar behaviour
RENEW_INTERVAL = "1h"
LEASE_DURATION = "12h"
INIT_FLAG = "--init"
JOB_FLAG = "--job"
IMAGE_PULL_POLICY = "Always"

# Owner kinds whose pods run to completion; the sidecar must exit with them
JOB_LIKE_OWNER_KINDS = frozenset({"Job", "Workflow"})

# Fixed resource quantities of the injected containers
SIDECAR_RESOURCE_REQUESTS = {"cpu": "10m", "memory": "20Mi"}
SIDECAR_RESOURCE_LIMITS = {"cpu": "30m", "memory": "50Mi"}

# Admission protocol
ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_KIND = "AdmissionReview"
PATCH_TYPE_JSON_PATCH = "JSONPatch"
JSON_CONTENT_TYPE = "application/json"

# Certificate reload watch results
RELOAD_SUCCESS = "success"
RELOAD_FAILURE = "failure"
