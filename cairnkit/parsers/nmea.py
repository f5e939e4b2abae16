# -*- coding: utf-8 -*-
"""
NMEA 0183 position sentence parser
Covers the sentences a position source needs: fix (GGA/GNS), motion (RMC/VTG)
and accuracy (GST).
parsedMessage structure: {sentenceFormatter: {label: value, ..., talkerId, talkerIdName, messageName}}
"""

import operator, re
from functools import reduce
from typing import Optional


# $TALKER_ID(2) + FORMATTER(3) + data + *CHECKSUM(2 hex) + line ending
SENTENCE_PATTERN = rb'\$[A-Z]{2}[A-Z]{3}[A-Z0-9,. *\-]*\*[0-9A-F]{2}\r?\n'

# Fix quality values that come from differential or RTK corrections
DIFFERENTIAL_QUALITIES = {'2', '4', '5', '9'}


class Nmea:
    """NMEA Parsing class"""


    def __init__(self):
        """Initializes label dictionaries keyed by sentence formatter."""

        self.labels = {
            'GGA' : ('GPS Fix', ['time', 'lat (degMin)', 'NS', 'lon (degMin)', 'EW', 'quality', 'numSV', 'HDOP', 'alt (m)', 'altUnit', 'sep (m)', 'sepUnit', 'diffAge (s)', 'diffStation']),
            'GNS' : ('GNSS Fix', ['time', 'lat (degMin)', 'NS', 'lon (degMin)', 'EW', 'posMode', 'numSV', 'HDOP', 'alt (m)', 'sep (m)', 'diffAge (s)', 'diffStation', 'navStatus']),
            'GST' : ('GNSS Psuedorange Errors', ['time', 'rangeRms (m)', 'stdMajor (m)', 'stdMinor (m)', 'orient (deg)', 'stdLat (m)', 'stdLong (m)', 'stdAlt (m)']),
            'RMC' : ('Recommended Minimum Data', ['time', 'status', 'lat (degMin)', 'NS', 'lon (degMin)', 'EW', 'spd (knots)', 'cog (deg)', 'date', 'mv (deg)', 'mvEW', 'posMode', 'navStatus']),
            'VTG' : ('Course Over Ground and Speed', ['cogt (deg)', 'cogtUnit', 'cogm (deg)', 'cogmUnit', 'sogn (knots)', 'sognUnit', 'sogk (km/h)', 'sogkUnit', 'posMode']),
        }

        self.talkerIds = {
            'GP': 'GPS',
            'GL': 'GLONASS',
            'GA': 'Galileo',
            'GB': 'BeiDou',
            'GI': 'NavIC',
            'GQ': 'QZSS',
            'GN': 'GNSS',
        }


    @staticmethod
    def checksum(body: str) -> int:
        """Returns checksum (int) of the portion between $ and *"""
        return reduce(operator.xor, (ord(s) for s in body), 0)


    def parse(self, raw: bytes) -> dict:
        """Parse a single sentence, returning {sentenceFormatter: {parsedMessageHere}}.
        Unframed input gives {'noMessage': {}}, a checksum mismatch gives {'unknownMessage': {...}}"""

        try:
            if match := re.search(SENTENCE_PATTERN, raw):
                message = match.group().decode('ASCII').rstrip('\r\n')
            else:
                return {"noMessage" : {}}

            body, rawChecksum = message[1:].split('*')
            if int(rawChecksum, base=16) != self.checksum(body):
                return {"unknownMessage" : {"info" : {"passedChecksum" : False, "raw" : message}}}

        except (UnicodeDecodeError, ValueError):
            return {"noMessage" : {}}

        csv = body.split(',')
        talkerId = csv[0][:2]
        sentenceFormatter = csv[0][2:]
        fields = csv[1:]

        messageName, labels = self.labels.get(sentenceFormatter, (f'unrecognizedSentenceFormatter: {sentenceFormatter}', ['unknown']*len(fields)))
        data = {key:value for key,value in zip(labels, fields)}
        data['talkerId'] = talkerId
        data['talkerIdName'] = self.talkerIds.get(talkerId, f'unknownTalkerId: {talkerId}')
        data['messageName'] = messageName
        return {sentenceFormatter : data}


    def parseAll(self, bytesBin: bytes) -> tuple:
        """Takes bytes, returns a tuple of the bytes left over after every framed sentence
        was removed and the list of parsed messages (dict)"""
        messages = []
        while match := re.search(SENTENCE_PATTERN, bytesBin):
            start, end = match.start(), match.end()
            messages.append(self.parse(bytesBin[start:end]))
            bytesBin = bytesBin[:start] + bytesBin[end:]
        return bytesBin, messages


    ##################### Field conversion helpers ####################################################################
    @staticmethod
    def degMinToDeg(value: str, hemisphere: str) -> Optional[float]:
        """Convert ddmm.mmmm / dddmm.mmmm plus N/S/E/W into signed decimal degrees. Empty or garbled fields give None"""
        if not value or not hemisphere:
            return None
        dot = value.find('.')
        split = (dot if dot != -1 else len(value)) - 2
        try:
            degrees = float(value[:split] or 0) + float(value[split:]) / 60.0
        except ValueError:
            return None
        return -degrees if hemisphere in ('S', 'W') else degrees


    @staticmethod
    def toFloat(value: Optional[str]) -> Optional[float]:
        """Empty NMEA fields give None"""
        if value is None or value == '':
            return None
        try:
            return float(value)
        except ValueError:
            return None
