"""Stack bootstrap orchestrator.

Brings a Consul + Couchbase + app + Nginx + Prometheus stack from a cold start
to a running, reachable deployment:
 - resolves service endpoints (Triton CNS or local docker port mappings)
 - gates each step on the dependency actually answering
 - publishes consul-template sources before the services that read them
 - creates Couchbase buckets and primary indexes, skipping ones that exist

Steps run strictly in order on a single thread.
"""

__version__ = "0.1.0"
