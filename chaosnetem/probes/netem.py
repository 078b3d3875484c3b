from logzero import logger

from chaosnetem.actions.netem import nsenter_command
from chaosnetem.common import DEFAULT_CHAOS_NETWORK_INTERFACE
from chaosnetem.execute.execute import CommandExecutor, ExecutionTimeout


def netem_is_applied(pid: int, executor: CommandExecutor,
                     interface: str = DEFAULT_CHAOS_NETWORK_INTERFACE) -> bool:
    """
    Is a netem qdisc installed on interface in pid's network namespace?

    :param pid: The PID owning the target container's network namespace.
        Required.
    :type pid: int
    :param executor: Runs the command. Required.
    :type executor: CommandExecutor
    :param interface: The network interface inside the namespace.
        Optional. (Default: chaosnetem.common.DEFAULT_CHAOS_NETWORK_INTERFACE)
    :type interface: str
    :return: bool
    """
    command = nsenter_command(pid, "tc qdisc show dev {}".format(interface))
    try:
        result = executor.execute(command)
    except ExecutionTimeout as e:
        logger.error("Timed out listing qdiscs: %s", e)
        return False
    if result.return_code != 0:
        logger.error("Failed to list qdiscs on %s in pid %s: %s", interface,
                     pid, result.output)
        return False

    for line in result.stdout.splitlines():
        tokens = line.split()
        if len(tokens) > 1 and tokens[0] == "qdisc" and tokens[1] == "netem":
            logger.debug("Found netem qdisc: %s", line)
            return True
    return False
