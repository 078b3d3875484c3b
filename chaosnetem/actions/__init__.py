"""
Chaos 'actions' module.

This module contains *actions* that change the network behaviour of a single
container: adding a tc netem queueing discipline inside the container's
network namespace, removing it again, and the lifecycle that ties the two
together around a timed wait.

*Actions* are executed in the order they are declared. An *action* that
injects a fault must always be paired with one that removes it. The
lifecycle in lifecycle.py does this for you and also removes the fault when
the process is asked to terminate.
"""
