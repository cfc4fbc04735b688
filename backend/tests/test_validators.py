from datetime import date

import pytest

from registration.client.images import UploadedImage
from registration.validators import (
    MAX_IMAGE_BYTES, calculate_age, capitalize_proper_name, digits_only,
    is_valid_date_of_birth, is_valid_email, is_valid_image_file,
    is_valid_phone_number, years_before
)

TODAY = date(2024, 6, 15)


class TestPhoneNumber:
    @pytest.mark.parametrize("phone", [
        "4302032033",
        "(430) 203-2033",
        "430.203.2033",
        "4102012011",
        "6505551234",
    ])
    def test_valid(self, phone):
        assert is_valid_phone_number(phone)

    @pytest.mark.parametrize("phone", [
        "1234567890",   # ascending
        "0987654321",   # descending
        "0123456789",
        "5555555555",   # one digit
        "9999999999",
        "4343434343",   # repeating pair
        "7777777123",   # leading run
        "1231231234",
        "0001234567",   # reserved prefix
        "1112345678",
        "12345",
        "43020320331",
        "",
        None,
    ])
    def test_invalid(self, phone):
        assert not is_valid_phone_number(phone)

    def test_single_repeated_digit_never_valid(self):
        for digit in "0123456789":
            assert not is_valid_phone_number(digit * 10)

    def test_digits_only(self):
        assert digits_only("(430) 203-2033") == "4302032033"
        assert digits_only(None) == ""


class TestEmail:
    def test_valid(self):
        assert is_valid_email("aron.smith@gmail.com")
        assert is_valid_email("a@b.com")

    @pytest.mark.parametrize("email", ["a@b", "a.com", "aron@gmail", "arongmail.com", "a b@c.com", "@c.com", "", None])
    def test_invalid(self, email):
        assert not is_valid_email(email)


class TestDateOfBirth:
    def test_exactly_ten_years(self):
        assert is_valid_date_of_birth("2014-06-15", today=TODAY)

    def test_one_day_short_of_ten(self):
        assert not is_valid_date_of_birth("2014-06-16", today=TODAY)

    def test_future_date(self):
        assert not is_valid_date_of_birth("2025-01-01", today=TODAY)

    def test_hundred_year_limit(self):
        assert is_valid_date_of_birth("1924-06-15", today=TODAY)
        assert not is_valid_date_of_birth("1924-06-14", today=TODAY)

    @pytest.mark.parametrize("value", ["not-a-date", "2014-02-30", "", None])
    def test_unparseable(self, value):
        assert not is_valid_date_of_birth(value, today=TODAY)

    def test_calculate_age_same_day(self):
        assert calculate_age(TODAY, TODAY) == 0

    def test_calculate_age_before_birthday(self):
        assert calculate_age(date(2000, 6, 16), TODAY) == 23
        assert calculate_age(date(2000, 6, 15), TODAY) == 24

    def test_years_before_leap_day(self):
        assert years_before(date(2024, 2, 29), 10) == date(2014, 2, 28)
        assert years_before(date(2024, 2, 29), 4) == date(2020, 2, 29)


class TestCapitalize:
    @pytest.mark.parametrize("raw, expected", [
        ("john", "John"),
        ("DOE", "Doe"),
        ("mCdONALD", "Mcdonald"),
        ("  jOHN ", "John"),
        ("", ""),
        ("   ", ""),
        (None, ""),
    ])
    def test_capitalize_proper_name(self, raw, expected):
        assert capitalize_proper_name(raw) == expected


class TestImageFile:
    def test_accepts_image(self):
        assert is_valid_image_file(UploadedImage("me.jpg", "image/jpeg", b"x" * 10)).valid

    def test_rejects_non_image(self):
        check = is_valid_image_file(UploadedImage("notes.pdf", "application/pdf", b"x"))
        assert not check.valid
        assert check.error == "Please upload a valid image file (JPG, PNG, etc.)"

    def test_size_limit(self):
        assert is_valid_image_file(UploadedImage("ok.png", "image/png", b"\0" * MAX_IMAGE_BYTES)).valid
        check = is_valid_image_file(UploadedImage("big.png", "image/png", b"\0" * (MAX_IMAGE_BYTES + 1)))
        assert not check.valid
        assert check.error == "Image file is too large. Please upload an image smaller than 5MB."
