"""LVS health monitor (lvsmon).

Keeps an IPVS virtual service's real-server set in line with backend reachability:
 - per-backend ping probing, once per second
 - sliding-window packet loss average per backend
 - UP / DOWN state machine with a single loss threshold
 - add / remove real servers on transitions, creating virtual services on demand

A small FastAPI app (main.py) exposes the live state read-only.
"""
