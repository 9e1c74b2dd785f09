"""Tests for the CWOP weather packet decoder."""

import pytest

from aprs_wx.protocol.cursor import ParseCursor
from aprs_wx.protocol.fields import QUANTITY_COUNT, WEATHER_FIELDS, Quantity
from aprs_wx.protocol.packet import (
    DecodeError,
    NotWeather,
    PacketDecoder,
    PacketStatus,
    Position,
    WeatherPacket,
    decode_coordinate,
    decode_latitude,
    decode_longitude,
    parse_fixed,
)

EXAMPLE_LINE = (
    "STATION>APRS,TCPIP*:@092345z4903.50N/07201.75Wc220s004g005t077r000p000P000h50b10132"
)
EXAMPLE_LAT = 49.0 + 3.50 / 60.0
EXAMPLE_LON = -(72.0 + 1.75 / 60.0)


def _make_wx_line(
    callsign: str = "VE3XYZ-7",
    lat: str = "4903.50N",
    lon: str = "07201.75W",
    wind_dir: int = 270,
    wind_speed: int = 10,
    gust: int = 15,
    temp_f: int = 72,
    rain_hour: int = 0,
    rain_day: int = 12,
    rain_midnight: int = 5,
    humidity: int = 50,
    baro_tenths_hpa: int = 10132,
    lumin: str = "",
    suffix: str = "",
) -> str:
    """Build a complete weather line the way a CWOP station sends it."""
    return (
        f"{callsign}>APRS,TCPXX*,qAX,CWOP-3:@151753z{lat}/{lon}"
        f"_{wind_dir:03d}/{wind_speed:03d}"
        f"g{gust:03d}"
        f"t{temp_f:03d}"
        f"r{rain_hour:03d}"
        f"p{rain_day:03d}"
        f"P{rain_midnight:03d}"
        f"h{humidity % 100:02d}"
        f"b{baro_tenths_hpa:05d}"
        f"{lumin}{suffix}\n"
    )


@pytest.fixture
def decoder():
    return PacketDecoder()


class TestCursor:
    def test_take_advances_by_width_even_when_short(self):
        cursor = ParseCursor("abc", 1)
        text, cursor = cursor.take(5)
        assert text == "bc"
        assert cursor.offset == 6
        assert cursor.at_end

    def test_cursor_is_immutable(self):
        cursor = ParseCursor("abc")
        cursor.advance(2)
        assert cursor.offset == 0

    def test_after(self):
        cursor = ParseCursor("CALL>PATH:payload").after(":")
        assert cursor.peek() == "p"

    def test_after_missing(self):
        assert ParseCursor("no separator").after(":") is None


class TestFixedWidth:
    def test_exact_width(self):
        value, cursor = parse_fixed(ParseCursor("077r"), 3)
        assert value == 77.0
        assert cursor.offset == 3

    def test_negative(self):
        value, _ = parse_fixed(ParseCursor("-05"), 3)
        assert value == -5.0

    def test_trailing_garbage_is_no_value(self):
        value, cursor = parse_fixed(ParseCursor("07x"), 3)
        assert value is None
        assert cursor.offset == 3

    def test_missing_placeholder_is_no_value(self):
        value, _ = parse_fixed(ParseCursor("..."), 3)
        assert value is None

    def test_too_short_is_no_value(self):
        value, _ = parse_fixed(ParseCursor("07"), 3)
        assert value is None

    def test_whitespace_is_no_value(self):
        value, _ = parse_fixed(ParseCursor(" 77"), 3)
        assert value is None


class TestCoordinates:
    @pytest.mark.parametrize("degrees,minutes,hemisphere,sign", [
        (49, "03.50", "N", 1),
        (49, "03.50", "S", -1),
        (0, "00.00", "N", 1),
        (89, "59.99", "S", -1),
        (12, "30.00", "n", 1),
    ])
    def test_latitude_sign_and_magnitude(self, degrees, minutes, hemisphere, sign):
        value, cursor = decode_latitude(ParseCursor(f"{degrees:02d}{minutes}{hemisphere}/"))
        assert value == pytest.approx(sign * (degrees + float(minutes) / 60.0))
        assert cursor.peek() == "/"

    @pytest.mark.parametrize("degrees,minutes,hemisphere,sign", [
        (72, "01.75", "W", -1),
        (72, "01.75", "E", 1),
        (179, "59.99", "W", -1),
        (5, "00.00", "E", 1),
    ])
    def test_longitude_sign_and_magnitude(self, degrees, minutes, hemisphere, sign):
        value, _ = decode_longitude(ParseCursor(f"{degrees:03d}{minutes}{hemisphere}_"))
        assert value == pytest.approx(sign * (degrees + float(minutes) / 60.0))

    def test_bad_hemisphere(self):
        value, _ = decode_latitude(ParseCursor("4903.50E"))
        assert value is None

    def test_bad_minutes(self):
        value, _ = decode_coordinate(ParseCursor("49X3.50N"), 2, "N", "S")
        assert value is None

    def test_truncated(self):
        value, _ = decode_longitude(ParseCursor("0720"))
        assert value is None


class TestFieldTable:
    def test_every_quantity_has_a_field(self):
        assert {f.quantity for f in WEATHER_FIELDS} == set(Quantity)

    def test_flags_are_unique(self):
        flags = [f.flag for f in WEATHER_FIELDS]
        assert len(flags) == len(set(flags))


class TestExampleLine:
    """The reference CWOP line decodes field for field."""

    def test_decodes_as_weather(self, decoder):
        packet = decoder.decode_line(EXAMPLE_LINE)
        assert isinstance(packet, WeatherPacket)
        assert packet.status == PacketStatus.WX_PACKET

    def test_station_and_position(self, decoder):
        report = decoder.decode_line(EXAMPLE_LINE).report
        assert report.callsign == "STATION"
        assert report.timestamp == "092345z"
        assert report.position.latitude == pytest.approx(49.0583, abs=1e-4)
        assert report.position.longitude == pytest.approx(-72.0292, abs=1e-4)
        assert report.symbol_table == "/"
        assert report.symbol_code == "c"

    def test_weather_values(self, decoder):
        report = decoder.decode_line(EXAMPLE_LINE).report
        assert report.value(Quantity.WIND_DIRECTION) == 220
        assert report.value(Quantity.WIND_SPEED) == 4
        assert report.value(Quantity.WIND_GUST) == 5
        assert report.value(Quantity.TEMPERATURE) == 77
        assert report.value(Quantity.HUMIDITY) == 50
        assert report.value(Quantity.PRESSURE) == pytest.approx(1013.2)
        assert report.value(Quantity.RAIN_HOUR) == 0
        assert report.value(Quantity.RAIN_DAY) == 0
        assert report.value(Quantity.RAIN_MIDNIGHT) == 0
        assert report.value(Quantity.LUMINOSITY) is None

    def test_values_sequence_has_one_slot_per_quantity(self, decoder):
        report = decoder.decode_line(EXAMPLE_LINE).report
        assert len(report.values) == QUANTITY_COUNT

    def test_trailing_newline_is_harmless(self, decoder):
        packet, cursor = decoder.decode_with_cursor(ParseCursor(EXAMPLE_LINE + "\n"))
        assert isinstance(packet, WeatherPacket)
        assert packet.report.value(Quantity.PRESSURE) == pytest.approx(1013.2)
        assert cursor.peek() == "\n"

    def test_no_reference_means_no_distance(self, decoder):
        pos = decoder.decode_line(EXAMPLE_LINE).report.position
        assert pos.distance_km is None
        assert pos.bearing_deg is None
        assert pos.weight is None


class TestRoundTrip:
    def test_values_survive_encoding(self, decoder):
        line = _make_wx_line(
            wind_dir=315, wind_speed=12, gust=23, temp_f=-5, rain_hour=7,
            rain_day=123, rain_midnight=45, humidity=87, baro_tenths_hpa=9985,
            lumin="L456",
        )
        report = decoder.decode_line(line).report
        assert report.callsign == "VE3XYZ-7"
        assert report.symbol_code == "_"
        assert report.value(Quantity.WIND_DIRECTION) == 315
        assert report.value(Quantity.WIND_SPEED) == 12
        assert report.value(Quantity.WIND_GUST) == 23
        assert report.value(Quantity.TEMPERATURE) == -5
        assert report.value(Quantity.RAIN_HOUR) == 7
        assert report.value(Quantity.RAIN_DAY) == 123
        assert report.value(Quantity.RAIN_MIDNIGHT) == 45
        assert report.value(Quantity.HUMIDITY) == 87
        assert report.value(Quantity.PRESSURE) == pytest.approx(998.5)
        assert report.value(Quantity.LUMINOSITY) == 456


class TestFlaggedFields:
    def test_humidity_00_means_100(self, decoder):
        report = decoder.decode_line(_make_wx_line(humidity=100)).report
        assert report.value(Quantity.HUMIDITY) == 100

    def test_high_range_luminosity_adds_1000(self, decoder):
        report = decoder.decode_line(_make_wx_line(lumin="l234")).report
        assert report.value(Quantity.LUMINOSITY) == 1234

    def test_missing_value_placeholder(self, decoder):
        line = EXAMPLE_LINE.replace("t077", "t...")
        report = decoder.decode_line(line).report
        assert report.value(Quantity.TEMPERATURE) is None
        assert report.value(Quantity.HUMIDITY) == 50
        assert report.value(Quantity.PRESSURE) == pytest.approx(1013.2)

    def test_unknown_flag_stops_and_rewinds(self, decoder):
        line = "STATION>APRS:!4903.50N/07201.75W_220/004g005x123t077"
        packet, cursor = decoder.decode_with_cursor(ParseCursor(line))
        assert isinstance(packet, WeatherPacket)
        assert packet.report.value(Quantity.WIND_GUST) == 5
        assert packet.report.value(Quantity.TEMPERATURE) is None
        assert cursor.offset == line.index("x")

    def test_unknown_flag_at_loop_start(self, decoder):
        line = "STATION>APRS:!4903.50N/07201.75W_220/004xyz"
        packet, cursor = decoder.decode_with_cursor(ParseCursor(line))
        assert isinstance(packet, WeatherPacket)
        assert cursor.offset == line.index("x")
        assert cursor.peek() == "x"

    def test_comment_text_after_weather(self, decoder):
        line = _make_wx_line(suffix="eMB51 Davis VP2")
        packet, cursor = decoder.decode_with_cursor(ParseCursor(line))
        assert isinstance(packet, WeatherPacket)
        assert packet.report.value(Quantity.PRESSURE) == pytest.approx(1013.2)
        assert cursor.peek() == "e"

    def test_truncated_field_keeps_earlier_values(self, decoder):
        """Known ambiguity: a cut-off trailing field reads as end of record."""
        line = "STATION>APRS:!4903.50N/07201.75W_220/004g005t07"
        packet = decoder.decode_line(line)
        assert isinstance(packet, WeatherPacket)
        assert packet.report.value(Quantity.WIND_GUST) == 5
        assert packet.report.value(Quantity.TEMPERATURE) is None

    def test_truncated_field_is_logged(self, decoder, caplog):
        line = "STATION>APRS:!4903.50N/07201.75W_220/004g005b101"
        with caplog.at_level("WARNING", logger="aprs_wx.protocol.packet"):
            decoder.decode_line(line)
        assert "Weather value decoding error" in caplog.text
        assert line in caplog.text


class TestDecodeErrors:
    def test_missing_name_separator(self, decoder):
        packet = decoder.decode_line("STATIONAPRS,TCPIP*:@092345z4903.50N/07201.75W")
        assert isinstance(packet, DecodeError)
        assert packet.status == PacketStatus.DECODING_ERROR
        assert packet.report is None

    def test_empty_name(self, decoder):
        packet = decoder.decode_line(">APRS:!4903.50N/07201.75W_220/004")
        assert isinstance(packet, DecodeError)
        assert packet.report is None

    def test_missing_information_field(self, decoder):
        packet = decoder.decode_line("STATION>APRS,TCPIP*")
        assert isinstance(packet, DecodeError)

    def test_unhandled_discriminator(self, decoder):
        packet = decoder.decode_line("STATION>APRS::VE3ABC   :hello{1")
        assert isinstance(packet, DecodeError)
        assert packet.status == PacketStatus.DECODING_ERROR
        assert packet.offset == len("STATION>APRS:")

    def test_empty_information_field(self, decoder):
        """End of line where the discriminator belongs is an error."""
        packet = decoder.decode_line("STATION>APRS:")
        assert isinstance(packet, DecodeError)
        assert packet.status == PacketStatus.DECODING_ERROR
        assert packet.offset == len("STATION>APRS:")
        assert packet.report is None

    def test_newline_as_discriminator_is_an_error(self, decoder):
        packet = decoder.decode_line("STATION>APRS:\n")
        assert isinstance(packet, DecodeError)

    def test_latitude_error_keeps_partial_report(self, decoder):
        packet = decoder.decode_line("STATION>APRS:@092345z49X3.50N/07201.75W_220/004")
        assert isinstance(packet, DecodeError)
        assert packet.status == PacketStatus.ERROR_LATITUDE
        assert packet.report.callsign == "STATION"
        assert packet.report.timestamp == "092345z"
        assert packet.report.position.latitude is None

    def test_bad_latitude_hemisphere(self, decoder):
        packet = decoder.decode_line("STATION>APRS:!4903.50Q/07201.75W_220/004")
        assert packet.status == PacketStatus.ERROR_LATITUDE

    def test_longitude_error(self, decoder):
        packet = decoder.decode_line("STATION>APRS:!4903.50N/07201.75Z_220/004")
        assert isinstance(packet, DecodeError)
        assert packet.status == PacketStatus.ERROR_LONGITUDE
        assert packet.report.position.latitude == pytest.approx(EXAMPLE_LAT)
        assert packet.report.position.longitude is None


class TestNotWeather:
    def test_position_without_weather(self, decoder):
        """A bare position report is reported as NotWeather, not as an
        empty weather packet, so it never counts as an aggregate station."""
        packet = decoder.decode_line("STATION>APRS:!4903.50N/07201.75W-")
        assert isinstance(packet, NotWeather)
        assert packet.status == PacketStatus.NOT_WEATHER
        assert packet.callsign == "STATION"


class TestWeighting:
    def test_station_at_reference_has_full_weight(self):
        decoder = PacketDecoder(Position(EXAMPLE_LAT, EXAMPLE_LON), radius_km=50.0)
        pos = decoder.decode_line(EXAMPLE_LINE).report.position
        assert pos.distance_km == pytest.approx(0.0, abs=1e-6)
        assert pos.weight == pytest.approx(1.0)

    def test_station_inside_radius(self):
        decoder = PacketDecoder(Position(49.5, -72.0292), radius_km=100.0)
        pos = decoder.decode_line(EXAMPLE_LINE).report.position
        assert 45.0 < pos.distance_km < 55.0
        assert pos.bearing_deg == pytest.approx(180.0, abs=0.5)
        assert 0.0 < pos.weight < 1.0

    def test_station_outside_radius_has_no_weight(self):
        decoder = PacketDecoder(Position(45.0, -75.0), radius_km=50.0)
        pos = decoder.decode_line(EXAMPLE_LINE).report.position
        assert pos.distance_km > 50.0
        assert pos.weight is None

    def test_no_radius_means_no_weight(self):
        decoder = PacketDecoder(Position(EXAMPLE_LAT, EXAMPLE_LON))
        pos = decoder.decode_line(EXAMPLE_LINE).report.position
        assert pos.distance_km == pytest.approx(0.0, abs=1e-6)
        assert pos.weight is None

    def test_reference_without_coordinates(self):
        decoder = PacketDecoder(Position(), radius_km=50.0)
        pos = decoder.decode_line(EXAMPLE_LINE).report.position
        assert pos.distance_km is None
        assert pos.weight is None


class TestReentrancy:
    def test_decoder_keeps_no_line_state(self, decoder):
        first = decoder.decode_line(EXAMPLE_LINE)
        decoder.decode_line("garbage")
        second = decoder.decode_line(EXAMPLE_LINE)
        assert first.report.values == second.report.values
