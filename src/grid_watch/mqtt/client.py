"""Async MQTT transport for the device telemetry topic using aiomqtt."""

from __future__ import annotations

import asyncio
import logging
import ssl

import aiomqtt

from grid_watch.config.schema import MQTTConfig
from grid_watch.ecoflow.credentials import MQTTCredentials
from grid_watch.ecoflow.monitor import GridMonitor
from grid_watch.ecoflow.topics import (
    build_client_id,
    build_get_request,
    device_property_topic,
    mask_serial,
    property_get_topic,
)
from grid_watch.logging.context import bound_context

logger = logging.getLogger(__name__)


class DeviceMQTTClient:
    """Subscribes to one device's property topic and feeds the monitor.

    Handles connection, reconnection with a fixed delay, and reports
    connect/disconnect events so the monitor can reset the grid status.
    """

    def __init__(
        self,
        credentials: MQTTCredentials,
        device_sn: str,
        monitor: GridMonitor,
        config: MQTTConfig,
        request_status_on_connect: bool = False,
    ) -> None:
        self._credentials = credentials
        self._device_sn = device_sn
        self._monitor = monitor
        self._config = config
        self._request_status = request_status_on_connect
        self._connected = False
        self._stop_event = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def topic(self) -> str:
        return device_property_topic(self._device_sn)

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Keep a session open, reconnecting, until stopped or cancelled.

        :meth:`stop` takes effect between sessions; cancel the task to end
        an open session.
        """
        with bound_context(device=mask_serial(self._device_sn)):
            while not self._stop_event.is_set():
                try:
                    await self._session()
                except aiomqtt.MqttError as e:
                    logger.warning("MQTT connection lost: %s", e)
                finally:
                    self._mark_disconnected()

                if self._stop_event.is_set():
                    break
                logger.info(
                    "Reconnecting in %.0fs", self._config.reconnect_delay_seconds,
                )
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self._config.reconnect_delay_seconds,
                    )
                except asyncio.TimeoutError:
                    pass

    def _create_client(self) -> aiomqtt.Client:
        creds = self._credentials
        return aiomqtt.Client(
            hostname=creds.host,
            port=creds.port,
            username=creds.username or None,
            password=creds.password or None,
            identifier=build_client_id(creds.user_id, self._device_sn),
            keepalive=self._config.keepalive_seconds,
            timeout=self._config.connect_timeout_seconds,
            tls_context=ssl.create_default_context() if creds.use_tls else None,
        )

    async def _session(self) -> None:
        logger.info("Connecting to MQTT broker %s:%d", self._credentials.host, self._credentials.port)
        async with self._create_client() as client:
            self._connected = True
            self._monitor.on_connect()
            await client.subscribe(self.topic, qos=self._config.qos)
            logger.info("Subscribed to device %s", mask_serial(self._device_sn))

            if self._request_status:
                await self._send_get_request(client)

            async for message in client.messages:
                self._dispatch(str(message.topic), message.payload)

    def _dispatch(self, topic: str, payload: object) -> None:
        if isinstance(payload, (bytes, bytearray)):
            data = bytes(payload)
        elif isinstance(payload, str):
            data = payload.encode()
        else:
            return
        try:
            self._monitor.handle_message(topic, data)
        except Exception:
            logger.exception("Message handling failed for %s", topic)

    async def _send_get_request(self, client: aiomqtt.Client) -> None:
        """Best-effort request for an immediate state push."""
        topic = property_get_topic(self._credentials.user_id, self._device_sn)
        try:
            await client.publish(topic, build_get_request(), qos=self._config.qos)
            logger.debug("Status request sent")
        except aiomqtt.MqttError as e:
            logger.warning("Status request failed: %s", e)

    def _mark_disconnected(self) -> None:
        if not self._connected:
            return
        self._connected = False
        logger.info("MQTT connection closed")
        self._monitor.on_disconnect()
