import json
import shlex

from kubernetes.client.rest import ApiException
from logzero import logger

from chaosnetem.common import (ContainerRuntime, ResolutionError,
                               DEFAULT_CHAOS_INSPECT_COMMAND, get_runtime)
from chaosnetem.execute.execute import CommandExecutor, ExecutionTimeout

from typing import Union

# Where the PID of the container's primary process lives in the output of
# `crictl inspect`, per runtime.
PID_PATHS = {
    ContainerRuntime.CONTAINERD: ("info", "pid"),
    ContainerRuntime.CRIO: ("pid",),
}


def strip_container_id(container_id: str) -> str:
    """
    Remove the runtime scheme from a container id.

    Kubernetes reports container ids in the form <runtime>://<container-id>.
    crictl only understands the bare id.

    :param container_id: The container id as found in the pod's
        containerStatuses. Required.
    :type container_id: str
    :return: str
    """
    if not container_id or "://" not in container_id:
        raise ResolutionError("malformed container id: {!r}".format(container_id))
    bare_id = container_id.split("://", 1)[1]
    if not bare_id:
        raise ResolutionError("malformed container id: {!r}".format(container_id))
    return bare_id


def parse_pid_from_json(output: Union[str, bytes],
                        runtime: Union[str, ContainerRuntime]) -> int:
    """
    Extract the PID from `crictl inspect` output.

    In containerd the PID is found at info.pid. In crio it is the top level pid
    attribute. A PID of 0 means no running container was found.

    :param output: The raw inspect output. Required.
    :type output: Union[str, bytes]
    :param runtime: The container runtime. Required.
    :type runtime: Union[str, ContainerRuntime]
    :return: int
    """
    path = PID_PATHS[get_runtime(runtime)]

    try:
        document = json.loads(output)
    except ValueError:
        raise ResolutionError("[cri] Could not parse json from inspect output",
                              output=output)

    pid = document
    for key in path:
        if not isinstance(pid, dict) or key not in pid:
            raise ResolutionError("[cri] Could not find {} field in "
                                  "json".format(".".join(path)), output=output)
        pid = pid[key]

    if isinstance(pid, bool) or not isinstance(pid, int):
        raise ResolutionError("[cri] {} is not an integer: {!r}".format(
            ".".join(path), pid))
    if pid <= 0:
        raise ResolutionError("[cri] no running target container found, "
                              "pid: {}".format(pid))
    return pid


def get_pid(container_id: str, runtime: Union[str, ContainerRuntime],
            executor: CommandExecutor) -> int:
    """
    Resolve the PID owning a container's network namespace.

    crictl is executed exactly once. Any failure is fatal.

    :param container_id: The container id, with or without the runtime
        scheme. Required.
    :type container_id: str
    :param runtime: The container runtime. Required.
    :type runtime: Union[str, ContainerRuntime]
    :param executor: Runs the inspect command. Required.
    :type executor: CommandExecutor
    :return: int
    """
    runtime = get_runtime(runtime)
    if "://" in container_id:
        container_id = strip_container_id(container_id)
    logger.info("containerid: %s", container_id)

    command = "{} {}".format(DEFAULT_CHAOS_INSPECT_COMMAND,
                             shlex.quote(container_id))
    try:
        result = executor.execute(command)
    except ExecutionTimeout as e:
        raise ResolutionError(str(e), command=command)
    if result.return_code != 0:
        logger.error("[cri] Failed to run crictl: %s", result.output)
        raise ResolutionError("[cri] Failed to run crictl for container "
                              "{}".format(container_id), command=command,
                              output=result.output)

    try:
        pid = parse_pid_from_json(result.stdout, runtime)
    except ResolutionError as e:
        e.command = command
        e.output = e.output or result.output
        logger.error("[cri] Failed to parse json from crictl output: %s",
                     result.output)
        raise

    logger.info("[cri] Container ID=%s has process PID=%d", container_id, pid)
    return pid


def get_container_id(core_v1, namespace: str, pod: str, container: str) -> str:
    """
    Look up a container's id (<runtime>://<id>) from the pod's status.

    :param core_v1: A kubernetes CoreV1Api client. Required.
    :param namespace: The pod's namespace. Required.
    :type namespace: str
    :param pod: The pod name. Required.
    :type pod: str
    :param container: The container name. Required.
    :type container: str
    :return: str
    """
    try:
        pod_info = core_v1.read_namespaced_pod(pod, namespace)
    except ApiException as e:
        logger.error("Unable to get the pod %s/%s: %s", namespace, pod, e.reason)
        raise ResolutionError("unable to get the pod {}/{}".format(namespace, pod),
                              output=e.body)

    for status in pod_info.status.container_statuses or []:
        if status.name == container:
            if not status.container_id:
                raise ResolutionError("container {} in pod {}/{} has no "
                                      "container id yet".format(container,
                                                                namespace, pod))
            return status.container_id

    raise ResolutionError("container {} not found in pod {}/{}".format(
        container, namespace, pod))

