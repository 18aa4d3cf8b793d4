"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from src.adapters.mock import FakeCluster
from src.core.engine.executor import EngineMetadata
from src.core.models.plan import ActivePlan, ExecutionStatus, Plan, PlanStatus, Task
from src.core.observability.events import MemoryEventRecorder

# ── Resource templates ──────────────────────────────────────────

DEPLOYMENT = textwrap.dedent("""\
    apiVersion: apps/v1
    kind: Deployment
    metadata:
      name: web
    spec:
      replicas: 1
      template:
        spec:
          containers:
            - name: web
              image: "{{ Params.image }}"
""")

SERVICE = textwrap.dedent("""\
    apiVersion: v1
    kind: Service
    metadata:
      name: web
    spec:
      ports:
        - port: 80
""")

CONFIGMAP = textwrap.dedent("""\
    apiVersion: v1
    kind: ConfigMap
    metadata:
      name: settings
    data:
      step: "{{ StepName }}"
""")

STATEFULSET = textwrap.dedent("""\
    apiVersion: apps/v1
    kind: StatefulSet
    metadata:
      name: db
    spec:
      serviceName: web
      replicas: 1
      template:
        spec:
          containers:
            - name: db
              image: postgres
""")

JOB = textwrap.dedent("""\
    apiVersion: batch/v1
    kind: Job
    metadata:
      name: migrate
    spec:
      template:
        spec:
          restartPolicy: Never
          containers:
            - name: migrate
              image: "{{ Params.image }}"
""")

TEMPLATES = {
    "deployment.yaml": DEPLOYMENT,
    "service.yaml": SERVICE,
    "configmap.yaml": CONFIGMAP,
    "statefulset.yaml": STATEFULSET,
    "job.yaml": JOB,
}

TASKS = {
    "app": Task(name="app", resources=["deployment.yaml", "service.yaml"]),
    "config": Task(name="config", resources=["configmap.yaml"]),
    "db": Task(name="db", resources=["statefulset.yaml"]),
    "migrate": Task(name="migrate", resources=["job.yaml"]),
}


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for state files."""
    state_dir = tmp_path / ".state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def recorder() -> MemoryEventRecorder:
    return MemoryEventRecorder()


@pytest.fixture
def metadata() -> EngineMetadata:
    return EngineMetadata(
        instance_name="demo",
        namespace="ns",
        operator_name="shop",
        operator_version="1.0.0",
    )


@pytest.fixture
def make_active_plan():
    """Factory building an ActivePlan with a fresh status tree."""

    def _make(
        plan: Plan | dict,
        state: ExecutionStatus = ExecutionStatus.PENDING,
        name: str = "deploy",
        tasks: dict[str, Task] | None = None,
        templates: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> ActivePlan:
        if isinstance(plan, dict):
            plan = Plan.model_validate(plan)
        return ActivePlan(
            name=name,
            spec=plan,
            status=PlanStatus.from_plan(name, plan, state=state, execution_id="exec-1"),
            tasks=TASKS if tasks is None else tasks,
            templates=TEMPLATES if templates is None else templates,
            params={"image": "nginx:1.25"} if params is None else params,
        )

    return _make


# ── Operator package on disk ────────────────────────────────────

OPERATOR_YAML = textwrap.dedent("""\
    name: shop
    version: 1.0.0
    appVersion: "3.2"
    tasks:
      - name: app
        resources: [deployment.yaml, service.yaml]
      - name: config
        resources: [configmap.yaml]
      - name: cleanup
        resources: [configmap.yaml]
    plans:
      deploy:
        strategy: serial
        phases:
          - name: main
            strategy: serial
            steps:
              - name: config
                tasks: [config]
              - name: app
                tasks: [app]
      teardown:
        phases:
          - name: remove
            steps:
              - name: config
                tasks: [cleanup]
                delete: true
""")

PARAMS_YAML = textwrap.dedent("""\
    parameters:
      - name: image
        description: Container image
        default: nginx:1.25
      - name: replicas
        default: "1"
""")


@pytest.fixture
def package_dir(tmp_path: Path) -> Path:
    """A minimal operator package directory."""
    root = tmp_path / "operator"
    (root / "templates").mkdir(parents=True)
    (root / "operator.yaml").write_text(OPERATOR_YAML)
    (root / "params.yaml").write_text(PARAMS_YAML)
    for name in ("deployment.yaml", "service.yaml", "configmap.yaml"):
        (root / "templates" / name).write_text(TEMPLATES[name])
    return root
