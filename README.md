# rengarde

rengarde keeps a WireGuard link alive over unreliable uplinks. The client
sends a copy of every WireGuard packet over **every** usable network interface
of the machine (Wi-Fi, Ethernet, LTE modem, …) to a single server. The server
forwards whatever arrives to the local WireGuard endpoint and sends
WireGuard's replies back to every client address it has heard from recently.
The duplicates are left for WireGuard to discard, so as long as one path
works, the tunnel works.

## Installation

```
pip install rengarde
```

Python 3.11 or newer is required. The client binds each sending socket to its
interface with `SO_BINDTODEVICE`, which exists on Linux and usually needs root
or `CAP_NET_RAW`.

## Server

Write a configuration file (by default `engarde.yml` in the working
directory):

```yaml
server:
  description: "rengarde server"
  listenAddr: "0.0.0.0:59401"   # where clients send their packets
  dstAddr: "127.0.0.1:51820"    # local WireGuard listen port
  clientTimeout: 30             # seconds without traffic before a client is dropped
  writeTimeout: 0               # milliseconds; only 0 (disabled) is supported
```

`listenAddr` and `dstAddr` are required, in `host:port` form. Start it:

```
rengarde-server engarde.yml
```

If `clientTimeout` is missing or 0 it becomes 30 seconds; set it slightly
higher than the `PersistentKeepalive` of your WireGuard peers. Clients that
stay silent longer than that are dropped, both when a reply from WireGuard is
fanned out and by a sweep every 5 seconds. A missing `writeTimeout` becomes
10 ms, and any non-zero write timeout is then forced to 0 with a warning.

The server sends to WireGuard from a socket bound to `0.0.0.0` on a random
port. It exits with status 1 if the configuration cannot be read or a socket
cannot be bound, and with 130 on Ctrl+C.

## Client

```yaml
client:
  description: "rengarde client"
  listenAddr: "127.0.0.1:59401"    # point the WireGuard peer Endpoint here
  dstAddr: "vpn.example.com:59401" # the rengarde server
  excludedInterfaces:
    - "lo"
    - "docker0"
```

`listenAddr`, `dstAddr` and `excludedInterfaces` are required (the list may
be empty). `writeTimeout` is treated as on the server: it defaults to 10 and
is then forced to 0. Start it:

```
rengarde-client engarde.yml
```

Every second the client rescans the network interfaces. An interface gets its
own sending socket when it has an IPv4 address that is not multicast (IPv6
addresses are ignored); interfaces that disappear, lose their address, change
address or become excluded are dropped. Replies from the server on any
interface are passed to the address WireGuard last sent from.

To see which interfaces exist and which address the client would send from:

```
rengarde-client list-interfaces
```

## Logging and banner

Both commands log to standard error. The `RENGARDE_LOG` environment variable
takes a level name (`DEBUG`, `INFO`, `WARNING`, …); the default is `INFO`.

At start-up a one-line banner is printed. It is built from the environment
variables `RENGARDE_OFFICIAL_BUILD` (`true` or `false`; anything else is an
error), `VERGEN_GIT_DESCRIBE`, `VERGEN_GIT_DIRTY`, `VERGEN_BUILD_TIMESTAMP`
and `VERGEN_CARGO_TARGET_TRIPLE`, with fallbacks when they are unset.

## Using it as a library

The pieces are importable on their own, for example:

```python
from rengarde.server_config import parse_settings, validate_settings
from rengarde.clients import ClientManager

with open("engarde.yml") as fh:
    settings = validate_settings(parse_settings(fh.read()))
manager = ClientManager(settings.server.client_timeout)
manager.add_or_update_client(("192.0.2.10", 40000), 128)
print(manager.client_count())
```

- `rengarde.server_config` and `rengarde.client_config` parse and default the
  configuration files; malformed documents raise `ConfigError`.
- `rengarde.clients` holds `Client` and `ClientManager`.
- `rengarde.relay` holds the asyncio loops `receive_from_client` and
  `receive_from_wireguard`, plus `select_targets` for splitting live and
  timed-out clients.
- `rengarde.service` holds `Service`, which runs the whole client, and
  `get_address_by_interface` / `list_interface_addresses`.
- `rengarde.shared` holds `init`, which installs the log handler and returns a
  `Guard` context manager, and `format_header` / `print_header`.

## What it does not do

- A `webManager` section is accepted in both configuration files, but no web
  interface is served; only a warning is logged.
- `OTEL_EXPORTER_OTLP_ENDPOINT` is read into `TracingConfig.endpoint`, but no
  traces or metrics are exported anywhere.
- Write timeouts are not applied to socket writes.

## Running the tests

```
pip install "rengarde[test]"
pytest
```