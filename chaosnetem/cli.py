import argparse
import logging
import sys

import logzero
from logzero import logger
from kubernetes.config.config_exception import ConfigException

from chaosnetem.actions.lifecycle import network_chaos
from chaosnetem.common import (ChaosNetemError, CleanupError,
                               ContainerRuntime, LifecycleOutcome,
                               get_experiment_details, parse_duration)
from chaosnetem.execute.execute import get_executor
from chaosnetem.kube import chaos_event_sink, kube_client
from chaosnetem.probes.container import get_container_id


LOG_LEVEL_HELP = """Logging level.
                      [LOG-LEVEL]: notset, debug, info, warning, error, critical
                      Default: info"""
levels = {
    'notset': logging.NOTSET,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL
}


def log_level(v):
    if v.lower() in levels.keys():
        return levels[v.lower()]
    else:
        raise argparse.ArgumentTypeError(
            'Expected one of the following: {}.'.format(
                 ', '.join(levels.keys())))


def duration(v):
    try:
        return parse_duration(v)
    except ValueError:
        raise argparse.ArgumentTypeError(
            'Duration must be a non-negative whole number of seconds, '
            'got {}'.format(v))


def parse_args(argv=None, environ=None):
    parser = argparse.ArgumentParser(
        prog='chaosnetem',
        description='Inject a tc netem fault into the network namespace of '
                    'one container, hold it for a duration and remove it. '
                    'Defaults come from the helper environment variables.')

    try:
        details = get_experiment_details(environ)
    except ValueError as e:
        parser.error("invalid TOTAL_CHAOS_DURATION: {}".format(e))

    parser.add_argument('--namespace', default=details.namespace,
                        help='Namespace of the target pod. (APP_NS)')
    parser.add_argument('--pod', default=details.pod,
                        help='Target pod name. (APP_POD)')
    parser.add_argument('--container', default=details.container,
                        help='Target container name. (APP_CONTAINER)')
    parser.add_argument('--container-id', default=None,
                        help='Target container id (<runtime>://<id>). Skips '
                        'the kubernetes lookup when given.')
    parser.add_argument('--runtime', default=details.runtime,
                        choices=[r.value for r in ContainerRuntime],
                        help='Container runtime. (CONTAINER_RUNTIME)')
    parser.add_argument('--interface', default=details.interface,
                        help='Network interface inside the container. '
                        '(NETWORK_INTERFACE, Default: eth0)')
    parser.add_argument('--duration', type=duration,
                        default=details.chaos_duration,
                        help='Chaos duration in seconds. '
                        '(TOTAL_CHAOS_DURATION, Default: 30)')
    parser.add_argument('--netem-command', default=details.netem_command,
                        help='netem parameters, i.e. "delay 100ms 10ms". '
                        '(NETEM_COMMAND)')
    parser.add_argument('--ssh-host', default=details.ssh_host,
                        help='Run crictl/nsenter/tc on this host over SSH '
                        'instead of locally. (CHAOS_SSH_HOST)')
    parser.add_argument('--ssh-config-file', default=details.ssh_config_file,
                        help='SSH config file used with --ssh-host. '
                        '(CHAOS_SSH_CONFIG_FILE)')
    parser.add_argument('--ssh-user', default=details.ssh_user,
                        help='SSH user used with --ssh-host. (CHAOS_SSH_USER)')
    parser.add_argument('--ssh-identity-file',
                        default=details.ssh_identity_file,
                        help='SSH private key used with --ssh-host. '
                        '(CHAOS_SSH_IDENTITY_FILE)')
    parser.add_argument('-l', '--log-level', type=log_level, nargs='?',
                        const=logging.INFO, default=logging.INFO,
                        help=LOG_LEVEL_HELP)

    args = parser.parse_args(argv)
    if not args.netem_command:
        parser.error('a netem command is required (--netem-command or '
                     'NETEM_COMMAND)')
    if not args.runtime:
        parser.error('a container runtime is required (--runtime or '
                     'CONTAINER_RUNTIME)')
    if not args.container_id and not (args.namespace and args.pod and
                                      args.container):
        parser.error('either --container-id or --namespace, --pod and '
                     '--container are required')

    args.details = details._replace(
        namespace=args.namespace, pod=args.pod, container=args.container,
        runtime=args.runtime, interface=args.interface,
        chaos_duration=args.duration, netem_command=args.netem_command,
        ssh_host=args.ssh_host, ssh_config_file=args.ssh_config_file,
        ssh_user=args.ssh_user, ssh_identity_file=args.ssh_identity_file)
    return args


def init(args):
    logzero.loglevel(args.log_level)
    logger.debug("Initializing...")
    logger.debug("args: %s", args)


def main(args) -> int:
    init(args)
    details = args.details

    try:
        core_v1 = None
        if not args.container_id or details.engine_name:
            core_v1 = kube_client()
        executor = get_executor(details.ssh_host, details.ssh_config_file,
                                ssh_user=details.ssh_user,
                                identity_file=details.ssh_identity_file)
    except ConfigException as e:
        logger.error("helper pod failed to load the kubernetes configuration: "
                     "%s", e)
        return LifecycleOutcome.FAILED_DURING_INJECTION.exit_code
    except (OSError, ValueError) as e:
        logger.error("helper pod failed to set up command execution "
                     "(ssh host: %s): %s", details.ssh_host, e)
        return LifecycleOutcome.FAILED_DURING_INJECTION.exit_code

    try:
        container_id = args.container_id
        if not container_id:
            container_id = get_container_id(core_v1, details.namespace,
                                            details.pod, details.container)
        outcome = network_chaos(details, container_id, executor,
                                event_sink=chaos_event_sink(core_v1, details))
    except CleanupError as e:
        logger.error("helper pod failed to remove netem (command >%s<): %s",
                     e.command, e)
        outcome = e.outcome
    except ChaosNetemError as e:
        logger.error("helper pod failed due to err: %s (command >%s<)", e,
                     e.command)
        outcome = e.outcome

    if outcome is LifecycleOutcome.TERMINATED_BY_SIGNAL:
        logger.info("[Chaos]: Exiting after termination signal")
    return outcome.exit_code


def run():
    """Console script entry point."""
    sys.exit(main(parse_args()))


if __name__ == '__main__':
    run()
