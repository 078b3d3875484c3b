"""
Network chaos lifecycle.

One run resolves the target container's PID, injects a netem qdisc into its
network namespace, waits for the chaos duration or a termination signal
(whichever comes first) and removes the qdisc again.

Cleanup happens exactly once on every path that attempted an injection. The
only path that skips cleanup is a failure to resolve the PID, because nothing
was touched yet.
"""
import asyncio
import time
from enum import Enum

from logzero import logger

from chaosnetem.actions.netem import inject_netem, remove_netem
from chaosnetem.common import (ChaosNetemError, CleanupError, ExperimentDetails,
                               InjectionError, InjectionState,
                               LifecycleOutcome, TargetDescriptor,
                               target_from_details)
from chaosnetem.execute.execute import CommandExecutor
from chaosnetem.helpers import run
from chaosnetem.probes.container import get_pid

from typing import Callable, Optional


class LifecycleState(Enum):
    INIT = 1
    PID_RESOLVED = 2
    INJECTED = 3
    WAITING = 4
    CLEANING = 5
    DONE = 6


async def wait_for_expiry(duration: float, termination: asyncio.Event) -> bool:
    """
    Wait until duration elapses or termination is set.

    Returns True if termination won the race. The losing wait is cancelled.
    """
    timer = asyncio.ensure_future(asyncio.sleep(duration))
    signalled = asyncio.ensure_future(termination.wait())
    try:
        done, _ = await asyncio.wait({timer, signalled},
                                     return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (timer, signalled):
            if not task.done():
                task.cancel()
    return signalled in done


class NetworkChaosController(object):
    """
    Drives one network chaos run against one container.

    :param target: The container to fault.
    :param container_id: The container id, <runtime>://<id> or bare.
    :param netem_command: netem parameters handed verbatim to tc.
    :param duration: Seconds to keep the fault in place.
    :param executor: Runs crictl, nsenter and tc.
    :param event_sink: Called with a message once the fault is injected.
        Failures are logged and ignored.
    """

    def __init__(self, target: TargetDescriptor, container_id: str,
                 netem_command: str, duration: float,
                 executor: CommandExecutor,
                 event_sink: Optional[Callable[[str], None]] = None,
                 experiment_name: str = ""):
        self.target = target
        self.container_id = container_id
        self.netem_command = netem_command
        self.duration = duration
        self.executor = executor
        self.event_sink = event_sink
        self.experiment_name = experiment_name

        self.state = LifecycleState.INIT
        self.injection_state = InjectionState.NOT_INJECTED
        self.pid = None
        self._injection_attempted = False
        self._cleaned_up = False

    async def run(self, termination: asyncio.Event) -> LifecycleOutcome:
        """
        Run the lifecycle to completion.

        Returns COMPLETED_NORMALLY or TERMINATED_BY_SIGNAL. Failures raise a
        ChaosNetemError whose outcome attribute names the failure.
        """
        try:
            self.pid = get_pid(self.container_id, self.target.runtime,
                               self.executor)
        except ChaosNetemError:
            self.state = LifecycleState.DONE
            raise
        self.state = LifecycleState.PID_RESOLVED

        self._injection_attempted = True
        try:
            inject_netem(self.pid, self.netem_command, self.executor,
                         interface=self.target.interface)
        except InjectionError:
            # tc may have left partial state behind
            self.cleanup()
            raise
        self.injection_state = InjectionState.INJECTED
        self.state = LifecycleState.INJECTED

        self._notify("Injecting {} chaos on application pod".format(
            self.experiment_name or "network"))

        logger.info("[Chaos]: Waiting for %ss", self.duration)
        self.state = LifecycleState.WAITING
        started = time.monotonic()
        try:
            interrupted = await wait_for_expiry(self.duration, termination)
        except BaseException:
            logger.error("[Chaos]: Wait aborted, removing netem")
            self.cleanup()
            raise
        elapsed = time.monotonic() - started

        if interrupted:
            outcome = LifecycleOutcome.TERMINATED_BY_SIGNAL
            logger.info("[Chaos]: Terminated after %.1fs, removing netem",
                        elapsed)
        else:
            outcome = LifecycleOutcome.COMPLETED_NORMALLY
            logger.info("[Chaos]: Time is up for experiment: %s",
                        self.experiment_name)
            logger.info("[Chaos]: Stopping the experiment")

        try:
            self.cleanup()
        except CleanupError as e:
            e.wait_outcome = outcome
            raise
        return outcome

    def cleanup(self) -> bool:
        """
        Remove the injected qdisc.

        Runs at most once per controller. Does nothing if no injection was
        attempted. After a failed injection the removal is best effort.
        """
        if self._cleaned_up:
            logger.debug("Cleanup already done for pid %s", self.pid)
            return True
        if not self._injection_attempted:
            logger.debug("Nothing was injected, skipping cleanup")
            return True

        self._cleaned_up = True
        self.state = LifecycleState.CLEANING
        best_effort = self.injection_state is InjectionState.NOT_INJECTED
        try:
            return remove_netem(self.pid, self.executor,
                                interface=self.target.interface,
                                best_effort=best_effort)
        finally:
            self.state = LifecycleState.DONE

    def _notify(self, message: str):
        if self.event_sink is None:
            return
        try:
            self.event_sink(message)
        except Exception as e:
            logger.warning("Unable to record chaos injection event: %s", e)


def network_chaos(details: ExperimentDetails, container_id: str,
                  executor: CommandExecutor,
                  event_sink: Optional[Callable[[str], None]] = None
                  ) -> LifecycleOutcome:
    """
    Inject network chaos into one container for details.chaos_duration seconds.

    SIGINT and SIGTERM cut the wait short. The netem qdisc is removed before
    this function returns or raises.

    :param details: The experiment details. Required.
    :type details: ExperimentDetails
    :param container_id: The target container id. Required.
    :type container_id: str
    :param executor: Runs crictl, nsenter and tc. Required.
    :type executor: CommandExecutor
    :param event_sink: Called once the fault is injected. Optional.
    :type event_sink: Callable[[str], None]
    :return: LifecycleOutcome
    """
    controller = NetworkChaosController(target_from_details(details),
                                        container_id, details.netem_command,
                                        details.chaos_duration, executor,
                                        event_sink=event_sink,
                                        experiment_name=details.experiment_name)
    return run(controller.run)
