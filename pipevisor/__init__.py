"""
pipevisor: a minimal process supervisor.

Launches a fixed set of children, tags their output line by line, forwards
selected signals to them and tears the whole group down when any of them
exits or the supervisor is asked to stop.
"""
