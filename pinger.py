#!/usr/bin/env python3

import time
import socket
import logging
import threading
from dataclasses import dataclass
from typing import Optional

import config

try:
    from scapy.all import IP, ICMP, Raw, conf, send, sniff
except ImportError:
    logging.error("Scapy is not installed or import failed. Please run: pip install scapy")
    raise
except OSError as e:
    logging.error(f"Error initializing Scapy in pinger module: {e}")
    raise

ICMP_ECHO_REQUEST = 8
ICMP_ECHO_REPLY = 0
PAYLOAD = b"monet-latency-probe"


class ProbeSetupError(Exception):
    """The engine cannot be built for the requested target."""


class ProbeReadTimeout(Exception):
    """A sniff window passed without any echo reply. Expected, not a fault."""


@dataclass(frozen=True)
class EchoPacket:
    id: int
    seq: int
    rtt: Optional[float] = None


@dataclass
class PingStatistics:
    sent: int = 0
    received: int = 0
    duplicates: int = 0
    min_rtt: Optional[float] = None
    max_rtt: Optional[float] = None
    total_rtt: float = 0.0

    @property
    def loss_percent(self):
        if self.sent == 0:
            return 0.0
        return max(0.0, 100.0 * (self.sent - self.received) / self.sent)

    @property
    def avg_rtt(self):
        if self.received == 0:
            return None
        return self.total_rtt / self.received


def resolve_target(target):
    """Resolves a host name or address to an IPv4 address string."""
    try:
        return socket.gethostbyname(target)
    except (socket.gaierror, UnicodeError) as e:
        raise ProbeSetupError(f"cannot resolve target '{target}': {e}") from e


def route_for(addr):
    """
    (interface, source address) Scapy will use to reach `addr`.

    The source is None when Scapy has no usable route.
    """
    iface, source_ip, _gateway = conf.route.route(addr)
    if not source_ip or source_ip == "0.0.0.0":
        logging.warning(f"No route with a source address towards {addr}, reply filter will match any destination.")
        return iface, None
    return iface, source_ip


class Pinger:
    """
    ICMP echo prober for one target, built on Scapy.

    `run()` sends one echo request per interval from the calling thread while a
    sniffer thread collects the replies. Callbacks fire from those two threads:

        on_send(packet)             after a request went out
        on_send_error(packet, err)  when sending raised
        on_recv(packet)             for every echo reply carrying our identifier
        on_recv_error(err)          for sniffer faults and read timeouts

    Once `stop()` returns no callback will fire again.
    """

    def __init__(self, target, identifier, interval=1.0):
        self.addr = resolve_target(target)
        self.target = target
        self.identifier = identifier % config.SESSION_ID_SPACE
        self.interval = interval
        self.iface, self.source_ip = route_for(self.addr)

        self.on_send = None
        self.on_send_error = None
        self.on_recv = None
        self.on_recv_error = None

        self._stats = PingStatistics()
        self._sent_at = {}      # Key: seq, Value: wall-clock send time
        self._answered = set()  # Seqs already answered since they were last sent
        self._state_lock = threading.Lock()
        self._callback_lock = threading.Lock()
        self._closed = False
        self._stop_event = threading.Event()
        self._replies_in_window = 0
        self._receiver = None
        self._log_prefix = f"[{self.addr} id={self.identifier}]"

    def set_interval(self, interval):
        self.interval = interval

    def statistics(self):
        with self._state_lock:
            return PingStatistics(**vars(self._stats))

    def run(self):
        """Blocks, probing until stop() is called."""
        logging.info(f"{self._log_prefix} Pinger starting, interval {self.interval}s")
        self._receiver = threading.Thread(target=self._receive_loop, daemon=True)
        self._receiver.start()
        try:
            self._send_loop()
        finally:
            self._stop_event.set()
            self._receiver.join(timeout=config.RECV_TIMEOUT_S * 4)
            logging.info(f"{self._log_prefix} Pinger stopped.")

    def stop(self):
        with self._callback_lock:
            self._closed = True
        self._stop_event.set()

    def _emit(self, callback, *args):
        if callback is None:
            return
        with self._callback_lock:
            if self._closed:
                return
            callback(*args)

    def _send_loop(self):
        seq = 0
        while not self._stop_event.is_set():
            packet = EchoPacket(self.identifier, seq)
            probe = IP(dst=self.addr) / ICMP(type=ICMP_ECHO_REQUEST, id=self.identifier, seq=seq) / Raw(load=PAYLOAD)
            with self._state_lock:
                self._sent_at[seq] = time.time()
                self._answered.discard(seq)
            try:
                send(probe, verbose=config.SCAPY_VERBOSITY)
            except OSError as e:
                logging.error(f"{self._log_prefix} OS Error sending seq {seq}: {e}. Check permissions.")
                self._emit(self.on_send_error, packet, e)
            else:
                with self._state_lock:
                    self._stats.sent += 1
                self._emit(self.on_send, packet)
            seq = (seq + 1) % config.SEQUENCE_SPACE
            self._stop_event.wait(self.interval)

    @property
    def bpf_filter(self):
        bpf_filter = f"icmp and src host {self.addr}"
        if self.source_ip:
            bpf_filter += f" and dst host {self.source_ip}"
        return bpf_filter

    def _receive_loop(self):
        bpf_filter = self.bpf_filter
        logging.info(f"{self._log_prefix} Sniffing on '{self.iface}' with BPF filter: '{bpf_filter}'")

        while not self._stop_event.is_set():
            self._replies_in_window = 0
            try:
                sniff(iface=self.iface, filter=bpf_filter, prn=self._reply_callback, store=0,
                      timeout=config.RECV_TIMEOUT_S,
                      stop_filter=lambda _: self._stop_event.is_set())
            except OSError as e:
                logging.error(f"{self._log_prefix} Sniffer failed: {e}. Check permissions/interface.")
                self._emit(self.on_recv_error, e)
                self._stop_event.wait(config.RECV_TIMEOUT_S)
                continue
            if self._replies_in_window == 0 and not self._stop_event.is_set():
                self._emit(self.on_recv_error, ProbeReadTimeout(f"no reply within {config.RECV_TIMEOUT_S}s"))

    def _reply_callback(self, packet):
        """Callback for the Scapy sniffer; turns matching echo replies into on_recv calls."""
        if ICMP not in packet or IP not in packet:
            return
        icmp_layer = packet[ICMP]
        if icmp_layer.type != ICMP_ECHO_REPLY or icmp_layer.id != self.identifier:
            return

        seq = icmp_layer.seq
        received_at = float(packet.time)
        with self._state_lock:
            sent_at = self._sent_at.get(seq)
            if sent_at is None:
                logging.debug(f"{self._log_prefix} Reply for seq {seq} that was never sent by this pinger")
                return
            rtt = max(received_at - sent_at, 0.0)
            if seq in self._answered:
                self._stats.duplicates += 1
            else:
                self._answered.add(seq)
                self._stats.received += 1
                self._stats.total_rtt += rtt
                self._stats.min_rtt = rtt if self._stats.min_rtt is None else min(self._stats.min_rtt, rtt)
                self._stats.max_rtt = rtt if self._stats.max_rtt is None else max(self._stats.max_rtt, rtt)
        self._replies_in_window += 1
        self._emit(self.on_recv, EchoPacket(self.identifier, seq, rtt))
