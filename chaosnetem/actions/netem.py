from logzero import logger

from chaosnetem.common import (CleanupError, InjectionError, ResolutionError,
                               DEFAULT_CHAOS_NETWORK_INTERFACE)
from chaosnetem.execute.execute import CommandExecutor, ExecutionTimeout


def nsenter_command(pid: int, command: str) -> str:
    if pid is None or int(pid) <= 0:
        raise ResolutionError("refusing to enter the network namespace of "
                              "pid {}".format(pid))
    return "nsenter -t {} -n {}".format(int(pid), command)


def netem_add_command(pid: int, interface: str, netem_command: str) -> str:
    """
    Build the command adding a root netem qdisc inside pid's network namespace.

    netem_command is appended verbatim (i.e. 'delay 100ms 10ms distribution
    normal'). tc validates it, not us.
    """
    command = "tc qdisc add dev {} root netem ".format(interface)
    return nsenter_command(pid, command + (netem_command or ""))


def netem_delete_command(pid: int, interface: str) -> str:
    return nsenter_command(pid, "tc qdisc delete dev {} root".format(interface))


def inject_netem(pid: int, netem_command: str, executor: CommandExecutor,
                 interface: str = DEFAULT_CHAOS_NETWORK_INTERFACE) -> bool:
    """
    Inject network chaos in the target container.

    nsenter is used to enter the network namespace of the target container and
    run the tc netem command inside it.

    :param pid: The PID owning the target container's network namespace.
        Required.
    :type pid: int
    :param netem_command: The netem parameters, passed to tc as is. Required.
    :type netem_command: str
    :param executor: Runs the command. Required.
    :type executor: CommandExecutor
    :param interface: The network interface inside the namespace.
        Optional. (Default: chaosnetem.common.DEFAULT_CHAOS_NETWORK_INTERFACE)
    :type interface: str
    :return: bool
    """
    command = netem_add_command(pid, interface, netem_command)
    logger.info(command)
    try:
        result = executor.execute(command)
    except ExecutionTimeout as e:
        logger.error("Failed to inject netem in pid %s: %s", pid, e)
        raise InjectionError(str(e), command=command)
    if result.return_code != 0:
        logger.error(result.output)
        raise InjectionError("Failed to inject netem in the network namespace "
                             "of pid {}".format(pid), command=command,
                             output=result.output)
    return True


def remove_netem(pid: int, executor: CommandExecutor,
                 interface: str = DEFAULT_CHAOS_NETWORK_INTERFACE,
                 best_effort: bool = False) -> bool:
    """
    Remove the root qdisc injected by inject_netem.

    Removing a qdisc that is not there fails in tc. Use best_effort when the
    qdisc may be absent (i.e. after a failed injection).

    :param pid: The PID owning the target container's network namespace.
        Required.
    :type pid: int
    :param executor: Runs the command. Required.
    :type executor: CommandExecutor
    :param interface: Must be the interface given to inject_netem.
        Optional. (Default: chaosnetem.common.DEFAULT_CHAOS_NETWORK_INTERFACE)
    :type interface: str
    :param best_effort: Do NOT fail if the operation fails? (Default: False)
    :type best_effort: bool
    :return: bool
    """
    command = netem_delete_command(pid, interface)
    logger.info(command)
    try:
        result = executor.execute(command)
    except ExecutionTimeout as e:
        if best_effort:
            logger.warning("Ignoring netem removal timeout: %s", e)
            return False
        logger.error("unable to kill netem process, err: %s", e)
        raise CleanupError(str(e), command=command)

    if result.return_code != 0:
        if best_effort:
            logger.info("Ignoring failed netem removal in pid %s: %s", pid,
                        result.output.strip())
            return False
        logger.error(result.output)
        raise CleanupError("Failed to remove netem from the network namespace "
                           "of pid {}".format(pid), command=command,
                           output=result.output)
    return True
