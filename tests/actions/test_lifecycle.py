import asyncio
import json
import os
import signal
import time

import pytest

from chaosnetem.actions.lifecycle import (LifecycleState,
                                          NetworkChaosController,
                                          network_chaos, wait_for_expiry)
from chaosnetem.common import (CleanupError, InjectionError, InjectionState,
                               LifecycleOutcome, ResolutionError,
                               TargetDescriptor, get_experiment_details)
from chaosnetem.execute.execute import Result
from tests import FakeExecutor

INSPECT = Result(0, json.dumps({"info": {"pid": 4242}}), "")
TARGET = TargetDescriptor("shop", "cart-0", "app", "containerd", "eth1")
ADD = "tc qdisc add"
DELETE = "tc qdisc delete"


def controller(executor, duration=0.2, event_sink=None):
    return NetworkChaosController(TARGET, "containerd://abc123", "delay 100ms",
                                  duration, executor, event_sink=event_sink,
                                  experiment_name="pod-network-latency")


def run_controller(chaos, signal_after=None):
    async def go():
        termination = asyncio.Event()
        if signal_after is not None:
            asyncio.get_running_loop().call_later(signal_after, termination.set)
        return await chaos.run(termination)
    return asyncio.run(go())


def test_wait_for_expiry_timer_wins():
    async def go():
        return await wait_for_expiry(0.05, asyncio.Event())
    assert asyncio.run(go()) is False


def test_wait_for_expiry_signal_wins():
    async def go():
        termination = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, termination.set)
        started = time.monotonic()
        interrupted = await wait_for_expiry(30, termination)
        return interrupted, time.monotonic() - started
    interrupted, elapsed = asyncio.run(go())
    assert interrupted is True
    assert elapsed < 5


def test_completed_normally():
    executor = FakeExecutor([("crictl", INSPECT)])
    chaos = controller(executor, duration=0.2)

    outcome = run_controller(chaos)

    assert outcome is LifecycleOutcome.COMPLETED_NORMALLY
    assert outcome.exit_code == 0
    assert executor.commands() == [
        "crictl inspect abc123",
        "nsenter -t 4242 -n tc qdisc add dev eth1 root netem delay 100ms",
        "nsenter -t 4242 -n tc qdisc delete dev eth1 root",
    ]
    assert chaos.pid == 4242
    assert chaos.state is LifecycleState.DONE
    assert chaos.injection_state is InjectionState.INJECTED


def test_removal_starts_only_after_the_wait():
    executor = FakeExecutor([("crictl", INSPECT)])
    run_controller(controller(executor, duration=0.2))

    [injected_at] = executor.times(ADD)
    [removed_at] = executor.times(DELETE)
    assert removed_at - injected_at >= 0.2


def test_terminated_by_signal():
    executor = FakeExecutor([("crictl", INSPECT)])
    chaos = controller(executor, duration=30)

    started = time.monotonic()
    outcome = run_controller(chaos, signal_after=0.1)
    elapsed = time.monotonic() - started

    assert outcome is LifecycleOutcome.TERMINATED_BY_SIGNAL
    assert outcome.exit_code != 0
    assert elapsed < 5
    assert len(executor.commands(DELETE)) == 1


def test_signal_before_the_wait_returns_immediately():
    executor = FakeExecutor([("crictl", INSPECT)])

    async def go():
        termination = asyncio.Event()
        termination.set()
        return await controller(executor, duration=30).run(termination)

    assert asyncio.run(go()) is LifecycleOutcome.TERMINATED_BY_SIGNAL
    assert len(executor.commands(DELETE)) == 1


def test_zero_pid_touches_nothing():
    executor = FakeExecutor([("crictl", Result(0, json.dumps({"info": {"pid": 0}}), ""))])
    chaos = controller(executor)

    with pytest.raises(ResolutionError) as e:
        run_controller(chaos)

    assert e.value.outcome is LifecycleOutcome.FAILED_DURING_INJECTION
    assert e.value.outcome.exit_code != 0
    assert executor.commands("nsenter") == []
    assert chaos.state is LifecycleState.DONE


def test_unsupported_runtime_touches_nothing():
    executor = FakeExecutor([("crictl", INSPECT)])
    chaos = NetworkChaosController(TARGET._replace(runtime="docker"),
                                   "docker://abc123", "loss 5%", 0.1, executor)
    with pytest.raises(ResolutionError):
        run_controller(chaos)
    assert executor.calls == []


def test_failed_injection_still_cleans_up_once():
    executor = FakeExecutor([
        ("crictl", INSPECT),
        ("nsenter -t 4242 -n " + ADD, Result(2, "Error: Specified qdisc kind is unknown.\n", "")),
        ("nsenter -t 4242 -n " + DELETE, Result(2, "Error: Cannot delete qdisc with handle of zero.\n", "")),
    ])
    sink_messages = []
    chaos = controller(executor, event_sink=sink_messages.append)

    with pytest.raises(InjectionError) as e:
        run_controller(chaos)

    assert "qdisc kind is unknown" in e.value.output
    assert e.value.outcome is LifecycleOutcome.FAILED_DURING_INJECTION
    assert len(executor.commands(DELETE)) == 1
    assert chaos.injection_state is InjectionState.NOT_INJECTED
    assert sink_messages == []


def test_failed_cleanup_is_reported():
    executor = FakeExecutor([
        ("crictl", INSPECT),
        ("nsenter -t 4242 -n " + DELETE, Result(1, "Cannot find device \"eth1\"\n", "")),
    ])

    with pytest.raises(CleanupError) as e:
        run_controller(controller(executor, duration=0.05))

    assert e.value.outcome is LifecycleOutcome.FAILED_DURING_CLEANUP
    assert e.value.wait_outcome is LifecycleOutcome.COMPLETED_NORMALLY
    assert len(executor.commands(DELETE)) == 1


def test_cleanup_runs_at_most_once():
    executor = FakeExecutor([("crictl", INSPECT)])
    chaos = controller(executor, duration=0.05)
    run_controller(chaos)

    assert chaos.cleanup() is True
    assert len(executor.commands(DELETE)) == 1


def test_cleanup_without_injection_is_a_noop():
    executor = FakeExecutor()
    assert controller(executor).cleanup() is True
    assert executor.calls == []


def test_event_sink_is_notified_once_after_injection():
    executor = FakeExecutor([("crictl", INSPECT)])
    notified = []

    def sink(message):
        notified.append((time.monotonic(), message))

    run_controller(controller(executor, duration=0.05, event_sink=sink))

    [(at, message)] = notified
    assert message == "Injecting pod-network-latency chaos on application pod"
    assert executor.times(ADD)[0] <= at <= executor.times(DELETE)[0]


def test_event_sink_failure_does_not_abort():
    executor = FakeExecutor([("crictl", INSPECT)])

    def sink(message):
        raise RuntimeError("event api unavailable")

    outcome = run_controller(controller(executor, duration=0.05, event_sink=sink))
    assert outcome is LifecycleOutcome.COMPLETED_NORMALLY
    assert len(executor.commands(DELETE)) == 1


def test_network_chaos_completed():
    details = get_experiment_details({
        "EXPERIMENT_NAME": "pod-network-loss",
        "CONTAINER_RUNTIME": "containerd",
        "NETWORK_INTERFACE": "eth1",
        "TOTAL_CHAOS_DURATION": "0",
        "NETEM_COMMAND": "loss 100%",
    })
    executor = FakeExecutor([("crictl", INSPECT)])

    outcome = network_chaos(details, "containerd://abc123", executor)

    assert outcome is LifecycleOutcome.COMPLETED_NORMALLY
    assert executor.commands("nsenter") == [
        "nsenter -t 4242 -n tc qdisc add dev eth1 root netem loss 100%",
        "nsenter -t 4242 -n tc qdisc delete dev eth1 root",
    ]


def test_network_chaos_sigterm():
    details = get_experiment_details({
        "CONTAINER_RUNTIME": "containerd",
        "TOTAL_CHAOS_DURATION": "30",
        "NETEM_COMMAND": "delay 200ms",
    })
    executor = FakeExecutor([("crictl", INSPECT)])

    def sink(message):
        # Delivered while the loop's handlers are installed
        os.kill(os.getpid(), signal.SIGTERM)

    started = time.monotonic()
    outcome = network_chaos(details, "containerd://abc123", executor,
                            event_sink=sink)

    assert outcome is LifecycleOutcome.TERMINATED_BY_SIGNAL
    assert time.monotonic() - started < 5
    assert executor.commands(DELETE) == [
        "nsenter -t 4242 -n tc qdisc delete dev eth0 root"]
