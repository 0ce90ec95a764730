"""Label and annotation keys shared by the driver and the managers."""

from __future__ import annotations

APP_LABEL = "app"
APP_VALUE = "playground"
COMPONENT_LABEL = "component"
OWNER_LABEL = "ownerId"
RESOURCE_ID_LABEL = "resourceId"
REPOSITORY_LABEL = "repositoryId"
REPOSITORY_VERSION_LABEL = "repositoryVersionId"
POOL_ID_LABEL = "poolId"

SESSION_COMPONENT = "session"
WORKSPACE_COMPONENT = "workspace"
TEMPLATE_COMPONENT = "workspace-template"
BUILDER_COMPONENT = "builder"

# Nodes
NODE_POOL_LABEL = "app.playground/pool"
NODE_POOL_TYPE_LABEL = "app.playground/pool-type"
# Session pods only run on nodes tainted for user workloads
USER_POOL_TYPE = "user"
INSTANCE_TYPE_LABEL = "node.kubernetes.io/instance-type"
HOSTNAME_LABEL = "kubernetes.io/hostname"

# Annotations
SESSION_DURATION_ANNOTATION = "app.playground/session_duration"
PORTS_ANNOTATION = "app.playground/ports"
REPOSITORY_VERSION_STATE_ANNOTATION = "app.playground/repository_version_state"


def app_labels(component: str) -> dict[str, str]:
    return {APP_LABEL: APP_VALUE, COMPONENT_LABEL: component}
