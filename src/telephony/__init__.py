"""Telephony side of the call relay.

Twilio Media Streams connect to ``/media-stream``; each connection is served by
one :class:`telephony.session_gateway.SessionGateway`.
"""
