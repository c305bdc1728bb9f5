# stark

A small library for services that find each other. Services register their
nodes in a registry; clients look them up, narrow them with filters and pick
a node with a balancing strategy. Servers for HTTP (WSGI) and gRPC register
themselves while they run and deregister when they stop.

## Modules

- `stark.registry` – the data model (`Service`, `Node`, `Endpoint`, `Value`,
  each with `to_dict` / `from_dict`), watcher `Result`s, `Event` and
  `EventType`, option records, and the abstract `Registry` and `Watcher`
  interfaces. Errors: `RegistryError` and its subclasses `NotFoundError`,
  `WatcherStoppedError` and `NoNodeError`. A `Watcher` can be iterated; the
  loop ends once the watcher is stopped.
- `stark.memory` – `MemoryRegistry`, an in-process registry. Nodes registered
  with a `ttl` (seconds) are pruned when not re-registered in time; the
  pruning thread runs every `prune_interval` seconds until `close()` (or the
  end of a `with` block). `watch(service)` returns a `MemoryWatcher` that
  receives `update` and `delete` results. Services can be preloaded with
  `MemoryRegistry(services={"name": [Service(...), ...]})`.
- `stark.cache` – `Cache`, a registry wrapper that caches `get_service`
  lookups for `ttl` seconds (60 by default), follows changes through a
  background watcher, and serves stale entries while the underlying registry
  fails. `backoff(attempts)` gives the retry delay. Call `stop()` when done.
- `stark.filters` – `filter_endpoint(name)`, `filter_label(key, value)` and
  `filter_version(version)`; each returns a function from a list of services
  to a list of services.
- `stark.util` – `host_port`, `copy_service`, `copy_services`, `merge`,
  `remove`, `add_nodes` and `del_nodes`.
- `stark.rest_selector` – node selection for HTTP clients: `StaticSelector`
  and `RegistrySelector` (backed by a `Cache`), the strategies
  `round_robin()` (the default) and `random_strategy()`, and the errors
  `SelectorError`, `SelectorNotFoundError` and `NoneAvailableError`.
- `stark.rest_client` – `RestClient(name, selector, timeout=2.0,
  scheme="http")`. `request()` selects a node and returns a `requests`
  session bound to it: relative URLs are joined to `scheme://address`, and
  the timeout is applied unless given. Sessions are reused per address and
  closed by `close()` or a `with` block.
- `stark.rest_server` – `RestServer(registry, app, ServerOptions(...))`
  serves a WSGI application. `start()` binds the address (`":0"` picks a free
  port), registers the node, re-registers every `register_interval` seconds,
  and serves until `stop()` or, when run on the main thread, SIGTERM/SIGINT.
  Setting `cert_file` and `key_file` serves over TLS.
- `stark.rpc_server` – `RpcServer(registry, RpcServerOptions(...))` wraps a
  `grpc.server`; add servicers to its `grpc_server` attribute.
  `register_endpoints(*handlers)` describes the handlers' public methods as
  the service's endpoints. `RpcServerOptions.add_unary_interceptors` and
  `add_stream_interceptors` chain plain functions
  `fn(request, context, method, next_handler)` around calls. `start()` and
  `stop()` behave as for the HTTP server; `stop()` lets running calls finish
  within `stop_grace` seconds.
- `stark.rpc_selector` – `RegistryRpcSelector` and `StaticRpcSelector`,
  which return the filtered service list, a watcher for changes, and a target
  address such as `stark-registry:///name` or `stark-static:///name`.
- `stark.extractor` – `extract_endpoints(handler)`, `extract_endpoint` and
  `extract_value`, which describe methods from their type annotations;
  generator methods and iterator-typed parameters or results are marked
  `stream: true`.
- `stark.ratelimit` – `RateLimitInterceptor(limiter)`, a gRPC server
  interceptor that aborts calls with `RESOURCE_EXHAUSTED` whenever
  `limiter.allow()` returns false.
- `stark.consul_encoding` and `stark.mdns_encoding` – codecs that pack
  versions and endpoints into tags, and service details (`MdnsTxt`) into TXT
  record parts of at most 255 characters.

## Installing

```
pip install .
```

## Example

```python
from stark.memory import MemoryRegistry
from stark.registry import Node, Service
from stark.rest_selector import RegistrySelector

registry = MemoryRegistry()
registry.register(Service(
    name="greeter",
    version="1.0.0",
    nodes=[Node(id="greeter-1", address="127.0.0.1:8080")],
))

selector = RegistrySelector(registry)
node = selector.next("greeter")
print(node.address)          # 127.0.0.1:8080

selector.close()
registry.close()
```

Filters narrow the candidates before a node is chosen:

```python
from stark.filters import filter_version
from stark.registry import Node, Service
from stark.rest_selector import StaticSelector, round_robin

services = [
    Service(name="greeter", version="1.0.0",
            nodes=[Node(id="a", address="127.0.0.1:8080")]),
    Service(name="greeter", version="2.0.0",
            nodes=[Node(id="b", address="127.0.0.1:8081")]),
]
selector = StaticSelector(services, strategy=round_robin(),
                          filters=[filter_version("1.0.0")])
print(selector.next("greeter").address)   # 127.0.0.1:8080
```

## What it does not do

- The only registry backend is the in-memory one. There is no client for
  Consul, etcd or multicast DNS; only the tag and TXT record codecs are here.
- There is no gRPC client. The RPC selectors supply service lists and target
  addresses, but no name resolver or load balancer is registered with gRPC,
  so those addresses cannot be dialled directly.
- There is no metrics endpoint and no command-line program.

## Running the tests

```
pip install .[test]
pytest
```