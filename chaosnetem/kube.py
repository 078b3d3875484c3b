"""
Kubernetes access for the chaos helper.

Only two things are needed from the cluster: the target container's id (see
chaosnetem.probes.container.get_container_id) and a place to record that chaos
was injected (a ChaosEngine event).
"""
import datetime
import uuid

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from logzero import logger

from chaosnetem.common import ExperimentDetails

from typing import Callable, Optional


def kube_client() -> client.CoreV1Api:
    """
    Return a CoreV1Api client.

    In-cluster configuration is tried first (the helper normally runs as a pod).
    The local kubeconfig is used otherwise.
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        logger.debug("Loaded kubernetes configuration from kubeconfig")
    return client.CoreV1Api()


def generate_chaos_event(core_v1, details: ExperimentDetails, message: str,
                         reason: str = "ChaosInject",
                         event_type: str = "Normal"):
    """
    Record an event against the ChaosEngine driving this experiment.

    :param core_v1: A kubernetes CoreV1Api client. Required.
    :param details: The experiment details. Required.
    :type details: ExperimentDetails
    :param message: The event message. Required.
    :type message: str
    :param reason: The event reason. (Default: ChaosInject)
    :type reason: str
    :param event_type: Normal or Warning. (Default: Normal)
    :type event_type: str
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    name = "{}.{}".format(details.engine_name, uuid.uuid4().hex[:16])
    event = client.CoreV1Event(
        metadata=client.V1ObjectMeta(name=name,
                                     namespace=details.chaos_namespace),
        involved_object=client.V1ObjectReference(
            api_version="litmuschaos.io/v1alpha1",
            kind="ChaosEngine",
            name=details.engine_name,
            namespace=details.chaos_namespace,
            uid=details.chaos_uid or None),
        reason=reason,
        message=message,
        type=event_type,
        count=1,
        first_timestamp=now,
        last_timestamp=now,
        source=client.V1EventSource(component=details.chaos_pod_name or None),
    )
    logger.debug("Creating %s event %s in namespace %s", reason, name,
                 details.chaos_namespace)
    return core_v1.create_namespaced_event(details.chaos_namespace, event)


def chaos_event_sink(core_v1, details: ExperimentDetails
                     ) -> Optional[Callable[[str], None]]:
    """
    Build the notification callback used when chaos starts.

    Returns None when no ChaosEngine is configured, in which case no event is
    recorded.
    """
    if not details.engine_name:
        return None

    def notify(message: str):
        try:
            generate_chaos_event(core_v1, details, message)
        except ApiException as e:
            logger.warning("Unable to record %s event: %s", details.engine_name,
                           e.reason)

    return notify
