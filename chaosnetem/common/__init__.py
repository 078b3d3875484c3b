import os
from collections import namedtuple
from enum import Enum

from typing import Mapping


class ContainerRuntime(Enum):
    """
    All supported container runtimes.

    The value is the string accepted in the CONTAINER_RUNTIME environment
    variable and the --runtime command-line option.
    """
    CONTAINERD = "containerd"
    CRIO = "crio"

    @classmethod
    def has_value(cls, value):
        return any(value == item.value for item in cls)


class InjectionState(Enum):
    NOT_INJECTED = 1
    INJECTED = 2


class LifecycleOutcome(Enum):
    """
    Terminal result of one chaos run and the process exit code it maps to.
    """
    COMPLETED_NORMALLY = "completed-normally"
    TERMINATED_BY_SIGNAL = "terminated-by-signal"
    FAILED_DURING_INJECTION = "failed-during-injection"
    FAILED_DURING_CLEANUP = "failed-during-cleanup"

    @property
    def exit_code(self) -> int:
        if self is LifecycleOutcome.COMPLETED_NORMALLY:
            return 0
        return 1


class ChaosNetemError(Exception):
    """
    Base class for all errors raised while running network chaos.

    :param message: Human readable description of the failure.
    :param command: The external command that failed, if any.
    :param output: The raw combined output of the failed command, if any.
    """
    outcome = LifecycleOutcome.FAILED_DURING_INJECTION

    def __init__(self, message: str, command: str = None, output: str = None):
        super().__init__(message)
        self.command = command
        self.output = output

    def __str__(self):
        message = super().__str__()
        if self.output:
            message = "{}: {}".format(message, self.output.strip())
        return message


class ResolutionError(ChaosNetemError):
    """The target container or its PID could not be determined."""


class UnsupportedRuntimeError(ResolutionError):
    """The container runtime is not one of ContainerRuntime."""


class InjectionError(ChaosNetemError):
    """The netem queueing discipline could not be installed."""


class CleanupError(ChaosNetemError):
    """
    The netem queueing discipline could not be removed.

    wait_outcome records how the chaos wait ended before cleanup was
    attempted (None when cleanup followed a failed injection).
    """
    outcome = LifecycleOutcome.FAILED_DURING_CLEANUP

    def __init__(self, message: str, command: str = None, output: str = None,
                 wait_outcome: LifecycleOutcome = None):
        super().__init__(message, command=command, output=output)
        self.wait_outcome = wait_outcome


def get_runtime(value: str) -> ContainerRuntime:
    """
    Map a runtime name to a ContainerRuntime.

    :param value: The runtime name (i.e. 'containerd' or 'crio')
    :type value: str
    :return: ContainerRuntime
    """
    if isinstance(value, ContainerRuntime):
        return value
    if not ContainerRuntime.has_value(value):
        raise UnsupportedRuntimeError(
            "no supported container runtime, runtime: {}".format(value))
    return ContainerRuntime(value)


# The identity of the container being faulted. Never mutated once created.
TargetDescriptor = namedtuple('TargetDescriptor', ['namespace', 'pod',
                                                   'container', 'runtime',
                                                   'interface'])

ExperimentDetails = namedtuple('ExperimentDetails', [
    'experiment_name', 'namespace', 'pod', 'container', 'app_label',
    'runtime', 'interface', 'chaos_duration', 'netem_command',
    'chaos_namespace', 'engine_name', 'chaos_uid', 'chaos_pod_name',
    'ssh_host', 'ssh_config_file', 'ssh_user', 'ssh_identity_file'
])


def target_from_details(details: ExperimentDetails) -> TargetDescriptor:
    return TargetDescriptor(details.namespace, details.pod, details.container,
                            details.runtime, details.interface)


def parse_duration(value) -> int:
    """
    Parse a chaos duration in whole seconds. Negative values are rejected.
    """
    seconds = int(value)
    if seconds < 0:
        raise ValueError("duration must not be negative, got {}".format(value))
    return seconds


def getenv(key: str, default: str = "",
           environ: Mapping[str, str] = None) -> str:
    """
    Fetch an environment variable, falling back to default when it is unset
    or empty.
    """
    if environ is None:
        environ = os.environ
    value = environ.get(key, "")
    if value == "":
        value = default
    return value


def get_experiment_details(
        environ: Mapping[str, str] = None) -> ExperimentDetails:
    """
    Build the experiment details from the helper's environment variables.

    Duration must be a non-negative integer number of seconds. A ValueError
    is raised otherwise.

    :param environ: Mapping to read from.
        Optional. (Default: os.environ)
    :type environ: Mapping[str, str]
    :return: ExperimentDetails
    """
    def env(key, default=""):
        return getenv(key, default, environ=environ)

    return ExperimentDetails(
        experiment_name=env("EXPERIMENT_NAME"),
        namespace=env("APP_NS"),
        pod=env("APP_POD"),
        container=env("APP_CONTAINER"),
        app_label=env("APP_LABEL"),
        runtime=env("CONTAINER_RUNTIME"),
        interface=env("NETWORK_INTERFACE", DEFAULT_CHAOS_NETWORK_INTERFACE),
        chaos_duration=parse_duration(env("TOTAL_CHAOS_DURATION",
                                          str(DEFAULT_CHAOS_DURATION))),
        netem_command=env("NETEM_COMMAND"),
        chaos_namespace=env("CHAOS_NAMESPACE", DEFAULT_CHAOS_NAMESPACE),
        engine_name=env("CHAOS_ENGINE"),
        chaos_uid=env("CHAOS_UID"),
        chaos_pod_name=env("POD_NAME"),
        ssh_host=env("CHAOS_SSH_HOST") or None,
        ssh_config_file=env("CHAOS_SSH_CONFIG_FILE") or None,
        ssh_user=env("CHAOS_SSH_USER") or None,
        ssh_identity_file=env("CHAOS_SSH_IDENTITY_FILE") or None,
    )


# Chaos defaults
# Please keep defaults in lexically acending order by name
DEFAULT_CHAOS_COMMAND_TIMEOUT=60
DEFAULT_CHAOS_DURATION=30
DEFAULT_CHAOS_INSPECT_COMMAND="crictl inspect"
DEFAULT_CHAOS_NAMESPACE="litmus"
DEFAULT_CHAOS_NETWORK_INTERFACE="eth0"
