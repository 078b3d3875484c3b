"""
Chaos 'probes' module.

*Probes* gather data about the target container without changing it: the PID
owning its network namespace and whether a netem qdisc is in place.
"""
