import asyncio
import signal
from logzero import logger

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def run(callable, *args, signals=TERMINATION_SIGNALS, **kwargs):
    """
    Run an async function on a fresh event loop, turning termination signals
    into an event.

    The async function receives the event as its 'termination' keyword
    argument. The event is set the first time any of the given signals is
    delivered while the loop runs.

    :param callable: An async function pointer
    :type callable: Callable[..., Awaitable]
    :param *args: Expanded list of arguments to pass to the async function
    :type *args: Any
    :param signals: Signals that request termination.
        Optional. (Default: SIGINT and SIGTERM)
    :type signals: Iterable[signal.Signals]
    :param **kwargs: Expanded keyword arguments to pass to the async function
    :type **kwargs: Any
    :return: whatever the async function returns
    """
    loop = asyncio.new_event_loop()
    termination = asyncio.Event()

    def on_signal(signum):
        logger.info("[Chaos]: Killing process started because of %s received",
                    signal.Signals(signum).name)
        termination.set()

    installed = []
    try:
        for signum in signals:
            loop.add_signal_handler(signum, on_signal, signum)
            installed.append(signum)
        return loop.run_until_complete(
            callable(*args, termination=termination, **kwargs))
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)
        loop.close()
