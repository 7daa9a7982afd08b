"""
Builds the stack's service descriptors from a validated configuration.
"""
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import (
    ReadinessCheck,
    RestartPolicy,
    RestartPolicyCondition,
    ServiceDescriptor,
    ServiceRole,
    VolumeMount,
)
from ..MODELS.stack_config import StackConfig

UNIT_PREFIX = "quay-"
POSTGRES = "postgres"
REDIS = "redis"
QUAY = "quay"

POSTGRES_PORT = 5432
REDIS_PORT = 6379
QUAY_PORT = 8080


class StackBuilder:
    """
    Turns a StackConfig into the three service descriptors and the graph
    linking them: the registry depends on both postgres and redis.
    """

    def __init__(self, config: StackConfig, app_settle_delay: float = 10.0):
        self.config = config
        self.app_settle_delay = app_settle_delay

    def build(self) -> OrchestrationConfig:
        services = [self.postgres(), self.redis(), self.quay()]
        return OrchestrationConfig(
            services={svc.name: svc for svc in services},
            network=self.config.network,
            subnet=self.config.subnet,
        )

    def postgres(self) -> ServiceDescriptor:
        c = self.config
        return ServiceDescriptor(
            name=POSTGRES,
            role=ServiceRole.DATASTORE,
            description="Quay Postgresql Database",
            image=c.postgres_image,
            unit_name=UNIT_PREFIX + POSTGRES,
            environment={
                "POSTGRES_USER": c.postgres_user,
                "POSTGRES_PASSWORD": c.postgres_password,
                "POSTGRES_DB": c.postgres_db,
            },
            environment_file=str(c.persistent_env_file),
            network=c.network,
            ip=c.pg_ip,
            ports={POSTGRES_PORT: POSTGRES_PORT},
            volumes=[VolumeMount(source=str(c.postgres_dir), target="/var/lib/postgresql/data")],
            readiness=ReadinessCheck(
                command=["psql", "-d", c.postgres_db, "-U", c.postgres_user, "-c", "\\q"],
                description="psql connects to the registry database",
            ),
            post_start=[
                ["psql", "-d", c.postgres_db, "-U", c.postgres_user,
                 "-c", "CREATE EXTENSION IF NOT EXISTS pg_trgm"],
            ],
            restart_policy=RestartPolicy(condition=RestartPolicyCondition.ON_FAILURE),
        )

    def redis(self) -> ServiceDescriptor:
        c = self.config
        return ServiceDescriptor(
            name=REDIS,
            role=ServiceRole.CACHE,
            description="Quay Redis Cache",
            image=c.redis_image,
            unit_name=UNIT_PREFIX + REDIS,
            command=["redis-server", "--requirepass", c.redis_password],
            # expanded by systemd from the unit's environment file
            unit_command=["redis-server", "--requirepass", "${REDIS_PASS}"],
            environment_file=str(c.persistent_env_file),
            network=c.network,
            ip=c.redis_ip,
            ports={REDIS_PORT: REDIS_PORT},
            readiness=ReadinessCheck(
                command=["redis-cli", "-a", c.redis_password, "ping"],
                expect_output="PONG",
                description="redis answers PING",
            ),
            restart_policy=RestartPolicy(condition=RestartPolicyCondition.ON_FAILURE),
        )

    def quay(self) -> ServiceDescriptor:
        c = self.config
        return ServiceDescriptor(
            name=QUAY,
            role=ServiceRole.APPLICATION,
            description="Quay Container Registry",
            image=c.quay_image,
            unit_name=UNIT_PREFIX + QUAY,
            privileged=True,
            environment_file=str(c.persistent_env_file),
            network=c.network,
            ports={QUAY_PORT: QUAY_PORT},
            volumes=[
                VolumeMount(source=str(c.config_dir), target="/conf/stack"),
                VolumeMount(source=str(c.storage_dir), target="/datastorage"),
            ],
            depends_on=[POSTGRES, REDIS],
            settle_delay=self.app_settle_delay,
            restart_policy=RestartPolicy(condition=RestartPolicyCondition.ON_FAILURE),
        )
