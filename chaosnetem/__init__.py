"""
chaosnetem module

This module contains:
 - actions that inject and remove tc netem faults in a container's network
   namespace, and the lifecycle that holds a fault for a bounded duration
   (actions directory)
 - probes that gather data about the target container: the PID owning its
   network namespace and whether a netem qdisc is installed (probes directory)
 - helper functions (helpers.py file)
 - common enums, errors and configuration (common directory)
 - command executors, local and over SSH with Python Fabric (execute
   directory)
 - kubernetes access for container lookup and ChaosEngine events (kube.py)

The primitives are usable from chaostoolkit experiments and on their own. The
chaosnetem console script (cli.py) runs one complete network chaos injection
against a single container, the way a chaos helper pod does.

A run always ends with the netem qdisc removed: on normal expiry, on SIGINT or
SIGTERM, and after a failed injection. The only exception is a failure to
resolve the target's PID, in which case nothing was touched.
"""
