#
# Bit-exact conversion between binary floating-point interchange formats
#
# (c) Neil Booth 2007-2021.  All rights reserved.
#

import logging
import re
from collections import namedtuple
from enum import IntEnum
from fractions import Fraction
from struct import Struct
from typing import NamedTuple

import attr


__all__ = ('Accuracy', 'Classification', 'Compare', 'DecodedFields',
           'FormatSpec', 'ArbitraryFloat', 'TextFormat', 'DefaultHexFormat',
           'EncodedValue', 'Binary16', 'BFloat16', 'Binary128', 'Float80x86', 'Float128PPC',
           'FloatFormatError', 'Unimplemented',
           'host_float32', 'DOUBLE_DOUBLE_PRECISION',
           'BINARY16', 'BFLOAT16', 'BINARY32', 'BINARY64', 'BINARY128', 'FLOAT80X86')


logger = logging.getLogger(__name__)


class Accuracy(IntEnum):
    '''How a delivered value relates to the exact value it stands for.'''
    BELOW = -1
    EXACT = 0
    ABOVE = 1


class Classification(IntEnum):
    ZERO = 0
    DENORMAL = 1
    NORMAL = 2
    INFINITY = 3
    NAN = 4


# Four-way result of comparing two arbitrary-precision values.
class Compare(IntEnum):
    LESS_THAN = 0
    EQUAL = 1
    GREATER_THAN = 2
    UNORDERED = 3


DecodedFields = namedtuple('DecodedFields', 'sign exponent mantissa')
pack_double = Struct('<d').pack
unpack_double = Struct('<d').unpack
pack_uint64 = Struct('<Q').pack
unpack_uint64 = Struct('<Q').unpack


#
# Errors
#

class FloatFormatError(ArithmeticError):
    '''All exceptions raised by conversion operations of this module derive from this.'''


class Unimplemented(FloatFormatError, NotImplementedError):
    '''Raised when a conversion path is not implemented for a format.  The condition is
    permanent; retrying the call cannot succeed.'''


@attr.s(slots=True, kw_only=True, eq=False)
class TextFormat:
    '''Controls the output of conversion to hexadecimal strings.'''

    # The minimum number of digits to output in the exponent of a finite number.
    exp_digits = attr.ib(default=1)
    # If True positive exponents display a '+'.
    force_exp_sign = attr.ib(default=True)
    # If True, numbers with a clear sign bit are preceded with a '+'.
    force_leading_sign = attr.ib(default=False)
    # If True, display a floating point followed by a zero even though none is needed.  For
    # example, "0x1p2" would display as "0x1.0p2".
    force_point = attr.ib(default=False)
    # If True, the exponent character 'p', the hex indicator 'x' and hexadecimal digits
    # are in upper case.  The inf and nan indicators below are copied unmodified.
    upper_case = attr.ib(default=False)
    # If True, trailing insignificant zeroes are stripped
    rstrip_zeroes = attr.ib(default=False)
    # The string output for infinity
    inf = attr.ib(default='Infinity')
    # The string output for NaNs.  Payloads are never displayed.
    nan = attr.ib(default='NaN')

    def leading_sign(self, value):
        '''Return the leading sign string.'''
        return '-' if value.sign else '+' if self.force_leading_sign else ''

    def exponent_str(self, exponent):
        '''Return the formatted exponent.'''
        sign = '-' if exponent < 0 else '+' if self.force_exp_sign else ''
        main = str(abs(exponent))
        zeroes = '0' * (abs(self.exp_digits) - len(main))
        return f'{sign}{zeroes}{main}'

    def format_non_finite(self, value):
        '''Returns the output text for infinities and NaNs.'''
        special = self.inf if value.is_infinite() else self.nan
        return self.leading_sign(value) + special

    def format_hex(self, value):
        '''Return the finite value formatted as a hexadecimal float.'''
        # Zero is treated specially only because Python does.  Otherwise shift the
        # significand so its MSB is the integer bit, then left up to 3 more bits so that
        # converting it to hex leaves the integer bit alone in the leading digit.
        significand = value.significand
        precision = value.precision
        if significand == 0:
            exponent = 0
            sig_digits = 1
        else:
            exponent = value.exponent_of_msb()
            significand <<= precision - significand.bit_length()
            significand <<= (precision & 3) ^ 1
            sig_digits = (precision + 6) // 4

        hex_sig = f'{significand:x}'
        # Prepend zeroes to get the full output precision
        hex_sig = '0' * (sig_digits - len(hex_sig)) + hex_sig
        # Strip trailing zeroes?
        if self.rstrip_zeroes:
            hex_sig = hex_sig.rstrip('0') or '0'
        # Insert the decimal point only if there are trailing digits
        if len(hex_sig) > 1:
            hex_sig = hex_sig[0] + '.' + hex_sig[1:]
        elif self.force_point:
            hex_sig += '.0'

        sign = self.leading_sign(value)
        result = f'{sign}0x{hex_sig}p{self.exponent_str(exponent)}'
        if self.upper_case:
            result = result.upper()
        return result


# Default format for hexadecimal output
DefaultHexFormat = TextFormat(force_point=True)


# When precision is lost during a conversion these indicate what fraction of the LSB the
# lost bits represented.  It essentially combines the roles of 'guard' and 'sticky' bits.
LF_EXACTLY_ZERO = 0           # 000000
LF_LESS_THAN_HALF = 1         # 0xxxxx  x's not all zero
LF_EXACTLY_HALF = 2           # 100000
LF_MORE_THAN_HALF = 3         # 1xxxxx  x's not all zero


class FormatSpec(NamedTuple):
    '''The bit layout of a binary floating point interchange format.  Only instantiate
    indirectly through from_widths().

    An encoding is, from the MSB, a sign bit, an exponent field of e_width bits and a
    mantissa field of m_width bits.  Unless explicit_int_bit is True the integer bit of
    normal numbers is implicit, and precision is m_width + 1; otherwise the integer bit is
    the MSB of the mantissa field and precision is m_width.

    An exponent field of all ones encodes infinities (zero fraction) and NaNs (non-zero
    fraction).  An exponent field of zero encodes zeroes (zero mantissa) and denormals
    (non-zero mantissa).

    e_max is the largest e such that 2^e is representable; e_min the smallest e such that
    2^e is a normal number.
    '''

    # These attributes determine the rest, which are pre-calculated for efficiency
    name: str
    e_width: int
    m_width: int
    e_bias: int
    explicit_int_bit: bool

    # All a function of the values above
    precision: int
    e_max: int
    e_min: int
    e_max_field: int
    int_bit: int
    quiet_bit: int
    max_significand: int
    fmt_width: int

    @classmethod
    def from_widths(cls, name, e_width, m_width, explicit_int_bit=False):
        '''Make a FormatSpec with pre-calculated values.  The bias is the IEEE-754 one.'''
        if not all(isinstance(arg, int) for arg in (e_width, m_width)):
            raise TypeError('e_width and m_width must be integers')
        if e_width < 2:
            raise ValueError('e_width must be at least 2 bits')
        if m_width < 1 + explicit_int_bit:
            raise ValueError(f'm_width must be at least {1 + explicit_int_bit} bits')
        e_bias = (1 << (e_width - 1)) - 1
        e_max_field = (1 << e_width) - 1
        precision = m_width if explicit_int_bit else m_width + 1
        int_bit = 1 << (precision - 1)
        quiet_bit = int_bit >> 1
        max_significand = (1 << precision) - 1
        fmt_width = 1 + e_width + m_width
        return cls(name, e_width, m_width, e_bias, bool(explicit_int_bit),
                   precision, e_max_field - 1 - e_bias, 1 - e_bias, e_max_field,
                   int_bit, quiet_bit, max_significand, fmt_width)

    def __repr__(self):
        return (f'FormatSpec({self.name!r}, e_width={self.e_width}, m_width={self.m_width}, '
                f'explicit_int_bit={self.explicit_int_bit})')

    def _check_implemented(self, operation):
        # Numeric conversions assume the integer bit is implicit
        if self.explicit_int_bit:
            logger.debug('unimplemented %s requested for %s', operation, self.name)
            raise Unimplemented(f'{operation} is not implemented for {self.name}')

    def check_bits(self, bits):
        '''Raise an exception if bits is not an encoding of this format.'''
        if not isinstance(bits, int):
            raise TypeError('bits must be an integer')
        if not 0 <= bits < 1 << self.fmt_width:
            raise ValueError(f'bits {bits:#x} out of range for {self.name}')

    ##
    ## Field extraction and assembly
    ##

    def decode(self, bits):
        '''Split an encoding into a DecodedFields (sign, exponent, mantissa).

        The exponent is the biased exponent field and the mantissa the raw mantissa field,
        including the integer bit if the format has an explicit one.
        '''
        mantissa = bits & ((1 << self.m_width) - 1)
        bits >>= self.m_width
        exponent = bits & self.e_max_field
        return DecodedFields(bool(bits >> self.e_width), exponent, mantissa)

    def assemble(self, sign, exponent, mantissa):
        '''Return the encoding with the given sign bit, biased exponent field and mantissa
        field.  The inverse of decode().'''
        if not isinstance(exponent, int) or not isinstance(mantissa, int):
            raise TypeError('exponent and mantissa must be integers')
        if not 0 <= exponent <= self.e_max_field:
            raise ValueError('biased exponent out of range')
        if not 0 <= mantissa < 1 << self.m_width:
            raise ValueError('mantissa out of range')
        return (((bool(sign) << self.e_width) | exponent) << self.m_width) | mantissa

    def classify(self, fields):
        '''Return the Classification of decoded fields.'''
        _sign, exponent, mantissa = fields
        if exponent == self.e_max_field:
            # The integer bit, if explicit, does not distinguish NaNs from infinities
            if mantissa & (self.int_bit - 1):
                return Classification.NAN
            return Classification.INFINITY
        if exponent == 0:
            return Classification.DENORMAL if mantissa else Classification.ZERO
        return Classification.NORMAL

    ##
    ## Factories of special encodings.  Each call returns a fresh integer.
    ##

    def make_zero(self, sign):
        '''Return the encoding of a zero of the given sign.'''
        return self.assemble(sign, 0, 0)

    def make_infinity(self, sign):
        '''Return the encoding of an infinity of the given sign.'''
        mantissa = self.int_bit if self.explicit_int_bit else 0
        return self.assemble(sign, self.e_max_field, mantissa)

    def make_nan(self, sign):
        '''Return the encoding of the canonical quiet NaN with the given sign.'''
        mantissa = self.quiet_bit
        if self.explicit_int_bit:
            mantissa |= self.int_bit
        return self.assemble(sign, self.e_max_field, mantissa)

    ##
    ## Conversion to and from arbitrary precision
    ##

    def to_arbitrary(self, fields):
        '''Return a pair (value, is_nan) where value is an ArbitraryFloat of this format's
        precision exactly equal to the decoded fields.

        NaNs keep their sign; the payload is carried along for inspection only.
        '''
        self._check_implemented('to_arbitrary')
        sign, exponent, mantissa = fields
        kind = self.classify(fields)
        if kind == Classification.NAN:
            return ArbitraryFloat.nan(sign, mantissa & (self.quiet_bit - 1), self.precision), True
        if kind == Classification.INFINITY:
            return ArbitraryFloat.infinity(sign, self.precision), False
        if kind == Classification.ZERO:
            return ArbitraryFloat.zero(sign, self.precision), False
        if kind == Classification.DENORMAL:
            # No integer bit, and the exponent of the smallest normal number
            exponent = 1
        else:
            mantissa |= self.int_bit
        exponent -= self.e_bias + self.precision - 1
        return ArbitraryFloat(self.precision, sign, exponent, mantissa), False

    def encode(self, value):
        '''Return a pair (bits, accuracy) where bits is the encoding of value correctly rounded
        to this format with round-half-even.  value is a Python float or an ArbitraryFloat.

        NaNs encode as the canonical quiet NaN of the same sign.
        '''
        self._check_implemented('encode')
        if isinstance(value, float):
            value = ArbitraryFloat.from_float(value)
        elif not isinstance(value, ArbitraryFloat):
            raise TypeError('encode requires a float or an ArbitraryFloat')

        sign = value.sign
        if value.is_nan():
            return self.make_nan(sign), Accuracy.EXACT
        if value.is_infinite():
            return self.make_infinity(sign), Accuracy.EXACT
        if value.significand == 0:
            return self.make_zero(sign), Accuracy.EXACT
        return self._encode_finite(sign, value.exponent, value.significand)

    def _encode_finite(self, sign, exponent, significand):
        '''Return a pair (bits, accuracy) for the correctly-rounded value of the infinitely
        precise non-zero number

           ± 2^exponent * significand
        '''
        # Shifting the significand so the MSB is the integer bit gives us the natural
        # shift.  However we cannot fully shift if the exponent would fall below e_min;
        # such numbers become denormals.
        exponent += self.precision - 1
        rshift = max(significand.bit_length() - self.precision, self.e_min - exponent)

        significand, lost_fraction = shift_right(significand, rshift)
        exponent += rshift

        is_rounded_up = round_up(lost_fraction, bool(significand & 1))
        if is_rounded_up:
            significand += 1
            # If the significand now overflows, halve it and increment the exponent
            if significand > self.max_significand:
                significand >>= 1
                exponent += 1

        if exponent > self.e_max:
            return self.make_infinity(sign), Accuracy.BELOW if sign else Accuracy.ABOVE

        accuracy = rounding_accuracy(sign, lost_fraction, is_rounded_up)
        if significand < self.int_bit:
            # Denormals and zeroes; the exponent is necessarily e_min
            return self.assemble(sign, 0, significand), accuracy
        return self.assemble(sign, exponent + self.e_bias, significand - self.int_bit), accuracy

    ##
    ## Bytes
    ##

    def pack(self, bits, endianness=None):
        '''Packs an encoding as bytes of the given endianness.

        Endianness can be 'big' or 'little'.  If None, host-native endianness is used.'''
        self.check_bits(bits)
        return bits.to_bytes(self.fmt_width // 8, endianness or host_endianness)

    def unpack(self, raw, endianness=None):
        '''Return the encoding stored in bytes of the given endianness.'''
        size = self.fmt_width // 8
        if len(raw) != size:
            raise ValueError(f'expected {size} bytes to unpack; got {len(raw)}')
        return int.from_bytes(raw, endianness or host_endianness)


class ArbitraryFloat(namedtuple('ArbitraryFloat', 'precision sign exponent significand')):
    '''A binary floating point value with a significand of at most precision bits and an
    unbounded exponent.

    A finite value is

            (-1)^sign * significand * 2^exponent

    where significand is a non-negative integer below 2^precision.  Zeroes have an exponent
    and significand of 0.  Infinities have an exponent of 'I' and significand zero.  NaNs
    have an exponent of 'N' and their significand is the payload; payloads are not
    preserved by conversions to encodings.

    Values are transient: construct them per conversion with the factory class methods.
    '''

    __slots__ = ()

    def __new__(cls, precision, sign, exponent, significand):
        if not isinstance(precision, int) or precision < 1:
            raise ValueError('precision must be a positive integer')
        if not isinstance(sign, bool):
            raise TypeError('sign must be a bool')
        if not isinstance(significand, int):
            raise TypeError('significand must be an integer')
        if exponent == 'I':
            if significand:
                raise ValueError('an infinity has no significand')
        elif exponent == 'N':
            if significand < 0:
                raise ValueError(f'NaN payload cannot be negative: {significand}')
        elif not isinstance(exponent, int):
            raise TypeError("exponent must be an integer, 'I' or 'N'")
        elif not 0 <= significand < 1 << precision:
            raise ValueError(f'significand {significand:,d} out of range')
        return super().__new__(cls, precision, sign, exponent, significand)

    @classmethod
    def zero(cls, sign, precision):
        '''Return a zero of the given sign.'''
        return cls(precision, sign, 0, 0)

    @classmethod
    def infinity(cls, sign, precision):
        '''Return an infinity of the given sign.'''
        return cls(precision, sign, 'I', 0)

    @classmethod
    def nan(cls, sign, payload, precision):
        '''Return a NaN of the given sign.'''
        return cls(precision, sign, 'N', payload)

    @classmethod
    def from_parts(cls, sign, exponent, significand, precision):
        '''Return a pair (value, accuracy) where value is the correctly-rounded value of

           ± 2^exponent * significand

        at the given precision.'''
        if significand == 0:
            return cls.zero(sign, precision), Accuracy.EXACT

        rshift = significand.bit_length() - precision
        significand, lost_fraction = shift_right(significand, rshift)
        exponent += rshift

        is_rounded_up = round_up(lost_fraction, bool(significand & 1))
        if is_rounded_up:
            significand += 1
            if significand >> precision:
                significand >>= 1
                exponent += 1

        accuracy = rounding_accuracy(sign, lost_fraction, is_rounded_up)
        return cls(precision, sign, exponent, significand), accuracy

    @classmethod
    def from_float(cls, value):
        '''Return the Python float exactly as an ArbitraryFloat of precision 53.'''
        if not isinstance(value, float):
            raise TypeError('from_float requires a float')
        bits, = unpack_uint64(pack_double(value))
        return BINARY64.to_arbitrary(BINARY64.decode(bits))[0]

    @classmethod
    def from_int(cls, value, precision):
        '''Return a pair (value, accuracy) for the integer rounded to the given precision.'''
        if not isinstance(value, int):
            raise TypeError('from_int requires an integer')
        return cls.from_parts(value < 0, 0, abs(value), precision)

    @classmethod
    def from_fraction(cls, value, precision):
        '''Return a pair (value, accuracy) for the fraction rounded to the given precision.'''
        if not isinstance(value, Fraction):
            raise TypeError('from_fraction requires a Fraction instance')
        numerator, denominator = abs(value.numerator), value.denominator
        # Divide with enough quotient bits for a guard bit.  A non-zero remainder becomes
        # a sticky bit below it.
        shift = max(0, precision + 2 - numerator.bit_length() + denominator.bit_length())
        quotient, remainder = divmod(numerator << shift, denominator)
        if remainder:
            quotient = (quotient << 1) | 1
            shift += 1
        return cls.from_parts(value < 0, -shift, quotient, precision)

    @classmethod
    def from_string(cls, string, precision):
        '''Return a pair (value, accuracy) for a string with a hexadecimal significand, or an
        infinity or NaN, rounded to the given precision.'''
        if not isinstance(string, str):
            raise TypeError('from_string requires a string')
        text = string.strip()
        sign = text.startswith('-')

        match = NON_FINITE_REGEX.match(text)
        if match:
            if match.group(1).lower() == 'nan':
                return cls.nan(sign, 0, precision), Accuracy.EXACT
            return cls.infinity(sign, precision), Accuracy.EXACT

        match = HEX_SIGNIFICAND_REGEX.match(text)
        if match is None:
            raise ValueError(f'invalid hexadecimal float: {string}')

        groups = match.groups()
        exponent = int(groups[4])

        # If a fraction was specified, the integer and fraction parts are in groups[1],
        # groups[2].  If no fraction was specified the integer is in groups[3].
        if groups[1] is None:
            significand = int(groups[3], 16)
        else:
            fraction = groups[2].rstrip('0')
            significand = int((groups[1] + fraction) or '0', 16)
            exponent -= len(fraction) * 4

        return cls.from_parts(sign, exponent, significand, precision)

    ##
    ## Non-computational operations
    ##

    def is_nan(self):
        return self.exponent == 'N'

    def is_infinite(self):
        return self.exponent == 'I'

    def is_finite(self):
        return isinstance(self.exponent, int)

    def is_zero(self):
        return self.is_finite() and self.significand == 0

    def exponent_of_msb(self):
        '''Return the exponent of the value written as a binary number with the point after
        its MSB.'''
        assert self.is_finite() and self.significand
        return self.exponent + self.significand.bit_length() - 1

    def as_integer_ratio(self):
        '''Return a pair (n, d) of integers that represent the value as a fraction in lowest
        terms and with a positive denominator.'''
        if self.is_nan():
            raise ValueError('cannot convert a NaN to an integer ratio')
        if self.is_infinite():
            raise OverflowError('cannot convert an infinity to an integer ratio')
        if self.significand == 0:
            return (0, 1)
        exp = self.exponent
        significand = self.significand
        while exp < 0 and not (significand & 1):
            significand >>= 1
            exp += 1

        if exp >= 0:
            n, d = significand << exp, 1
        else:
            n, d = significand, 1 << -exp
        return (-n if self.sign else n), d

    def copy_negate(self):
        '''Return this value with the opposite sign, including for NaNs.'''
        return self._replace(sign=not self.sign)

    ##
    ## Computational operations
    ##

    def round(self, precision):
        '''Return a pair (value, accuracy) for this value rounded to the given precision.'''
        if not self.is_finite():
            return self._replace(precision=precision), Accuracy.EXACT
        return self.from_parts(self.sign, self.exponent, self.significand, precision)

    def add(self, other, precision):
        '''Return a pair (value, accuracy) for the sum of this value and other rounded to the
        given precision.'''
        # Handle either being non-finite
        if not (self.is_finite() and other.is_finite()):
            if self.is_nan() or other.is_nan():
                nan = self if self.is_nan() else other
                return self.nan(nan.sign, nan.significand, precision), Accuracy.EXACT
            if self.is_infinite() and other.is_infinite() and self.sign != other.sign:
                # Addition of differently-signed infinities is invalid
                return self.nan(self.sign, 0, precision), Accuracy.EXACT
            infinity = self if self.is_infinite() else other
            return self.infinity(infinity.sign, precision), Accuracy.EXACT

        # Adding two like-signed zeroes gives their sign; other zero sums are positive
        if not other.significand:
            if not self.significand:
                return self.zero(self.sign and other.sign, precision), Accuracy.EXACT
            return self.round(precision)
        if not self.significand:
            return other.round(precision)

        # Shift the significand with the greater exponent left until its effective
        # exponent is equal to the smaller exponent, then add them as signed integers.
        lshift = self.exponent - other.exponent
        if lshift >= 0:
            lhs, rhs = self.significand << lshift, other.significand
            exponent = other.exponent
        else:
            lhs, rhs = self.significand, other.significand << -lshift
            exponent = self.exponent
        total = (-lhs if self.sign else lhs) + (-rhs if other.sign else rhs)
        if total == 0:
            return self.zero(False, precision), Accuracy.EXACT
        return self.from_parts(total < 0, exponent, abs(total), precision)

    def to_float64(self):
        '''Return a pair (value, accuracy) for this value correctly rounded to a Python float.
        NaNs are returned as a NaN of the same sign.'''
        bits, accuracy = BINARY64.encode(self)
        return unpack_double(pack_uint64(bits))[0], accuracy

    def to_float32(self):
        '''Return a pair (value, accuracy) for this value correctly rounded to binary32.  The
        value is returned as a Python float.'''
        bits, accuracy = BINARY32.encode(self)
        value, _ = BINARY32.to_arbitrary(BINARY32.decode(bits))
        return value.to_float64()[0], accuracy

    def to_string(self, text_format=None):
        '''Return text, with a hexadecimal significand for finite numbers, that is a
        representation of the value.  See TextFormat for output control.'''
        text_format = text_format or DefaultHexFormat
        if not self.is_finite():
            return text_format.format_non_finite(self)
        return text_format.format_hex(self)

    ##
    ## Comparisons.  NaNs are unordered; zeroes compare equal regardless of sign.
    ##

    def _order_key(self):
        if self.is_infinite():
            return (-1 if self.sign else 1, 0)
        return (0, Fraction(*self.as_integer_ratio()))

    def compare(self, rhs):
        '''Return self vs rhs as one of the four comparison constants.  rhs can be an
        ArbitraryFloat, a float or an int.'''
        if isinstance(rhs, float):
            rhs = self.from_float(rhs)
        elif isinstance(rhs, int):
            rhs, _ = self.from_int(rhs, max(rhs.bit_length(), 1))
        elif not isinstance(rhs, ArbitraryFloat):
            return None
        if self.is_nan() or rhs.is_nan():
            return Compare.UNORDERED
        lhs_key, rhs_key = self._order_key(), rhs._order_key()
        if lhs_key == rhs_key:
            return Compare.EQUAL
        return Compare.LESS_THAN if lhs_key < rhs_key else Compare.GREATER_THAN

    def _rich_compare(self, other, op):
        compare = self.compare(other)
        # Other tuples would otherwise be compared field by field with this namedtuple
        if compare is None and isinstance(other, tuple):
            raise TypeError(f"'{op}' not supported between instances of "
                            f"'{type(self).__name__}' and '{type(other).__name__}'")
        return compare

    def __eq__(self, other):
        compare = self.compare(other)
        if compare is None:
            return False if isinstance(other, tuple) else NotImplemented
        return compare == Compare.EQUAL

    def __ne__(self, other):
        compare = self.compare(other)
        if compare is None:
            return True if isinstance(other, tuple) else NotImplemented
        return compare != Compare.EQUAL

    def __lt__(self, other):
        compare = self._rich_compare(other, '<')
        if compare is None:
            return NotImplemented
        return compare == Compare.LESS_THAN

    def __le__(self, other):
        compare = self._rich_compare(other, '<=')
        if compare is None:
            return NotImplemented
        return compare in (Compare.EQUAL, Compare.LESS_THAN)

    def __ge__(self, other):
        compare = self._rich_compare(other, '>=')
        if compare is None:
            return NotImplemented
        return compare in (Compare.EQUAL, Compare.GREATER_THAN)

    def __gt__(self, other):
        compare = self._rich_compare(other, '>')
        if compare is None:
            return NotImplemented
        return compare == Compare.GREATER_THAN

    def __hash__(self):
        '''Python hash.  Must hash equally to other types with the same value.'''
        if self.is_nan():
            return 0
        if self.is_infinite():
            return -314159 if self.sign else 314159
        return hash(Fraction(*self.as_integer_ratio()))

    def __float__(self):
        return self.to_float64()[0]

    def __str__(self):
        return self.to_string()


#
# Predefined formats
#

BINARY16 = FormatSpec.from_widths('binary16', 5, 10)
BFLOAT16 = FormatSpec.from_widths('bfloat16', 8, 7)
BINARY32 = FormatSpec.from_widths('binary32', 8, 23)
BINARY64 = FormatSpec.from_widths('binary64', 11, 52)
BINARY128 = FormatSpec.from_widths('binary128', 15, 112)
# x87 extended precision has an explicit integer bit
FLOAT80X86 = FormatSpec.from_widths('float80x86', 15, 64, explicit_int_bit=True)

# Precision of the sum of the two binary64 components of a double-double
DOUBLE_DOUBLE_PRECISION = 2 * BINARY64.precision


def host_float32(value):
    '''Return the Python float rounded to binary32, as a host float32 conversion would, as an
    ArbitraryFloat.'''
    if not isinstance(value, float):
        raise TypeError('host_float32 requires a float')
    bits, _ = BINARY32.encode(value)
    return BINARY32.to_arbitrary(BINARY32.decode(bits))[0]


def _check_word_bits(instance, attribute, value):
    if not isinstance(value, int):
        raise TypeError(f'{attribute.name} must be an integer')
    if not 0 <= value < 1 << sum(instance.word_widths):
        raise ValueError(f'{attribute.name} {value:#x} out of range for '
                         f'{type(instance).__name__}')


@attr.s(slots=True, frozen=True, repr=False)
class EncodedValue:
    '''An immutable fixed-width encoding of a floating point value.

    Subclasses set fmt, their FormatSpec, and word_widths, the widths of the machine words
    the encoding is split into from the MSB.
    '''

    bits = attr.ib(validator=_check_word_bits)

    fmt = None
    word_widths = ()

    @classmethod
    def from_bits(cls, *words):
        '''Construct from raw machine words, most significant first.'''
        if len(words) != len(cls.word_widths):
            raise TypeError(f'{cls.__name__}.from_bits takes {len(cls.word_widths)} '
                            f'word(s); got {len(words)}')
        bits = 0
        for word, width in zip(words, cls.word_widths):
            if not isinstance(word, int):
                raise TypeError('raw words must be integers')
            if not 0 <= word < 1 << width:
                raise ValueError(f'word {word:#x} does not fit in {width} bits')
            bits = (bits << width) | word
        return cls(bits)

    def to_bits(self):
        '''Return the raw machine word, or a tuple of them if there are several.'''
        words = []
        bits = self.bits
        for width in reversed(self.word_widths):
            words.append(bits & ((1 << width) - 1))
            bits >>= width
        words.reverse()
        return words[0] if len(words) == 1 else tuple(words)

    @classmethod
    def from_arbitrary(cls, value):
        '''Return a pair (encoded, accuracy) for value rounded to this format.'''
        bits, accuracy = cls.fmt.encode(value)
        return cls(bits), accuracy

    @classmethod
    def from_float64(cls, value):
        '''Return a pair (encoded, accuracy) for the Python float rounded to this format.'''
        if not isinstance(value, float):
            raise TypeError('from_float64 requires a float')
        return cls.from_arbitrary(ArbitraryFloat.from_float(value))

    @classmethod
    def from_float32(cls, value):
        '''Return a pair (encoded, accuracy) for the Python float, first rounded to binary32,
        rounded to this format.'''
        return cls.from_arbitrary(host_float32(value))

    @classmethod
    def unpack(cls, raw, endianness=None):
        '''Construct from bytes of the given endianness.'''
        return cls(cls.fmt.unpack(raw, endianness))

    def pack(self, endianness=None):
        '''Packs the encoding to bytes of the given endianness.

        Endianness can be 'big' or 'little'.  If None, host-native endianness is used.'''
        return self.fmt.pack(self.bits, endianness)

    def fields(self):
        return self.fmt.decode(self.bits)

    def classify(self):
        return self.fmt.classify(self.fields())

    def to_arbitrary(self):
        '''Return a pair (value, is_nan); see FormatSpec.to_arbitrary().'''
        return self.fmt.to_arbitrary(self.fields())

    def to_float64(self):
        '''Return a pair (value, accuracy) for this value as a Python float.'''
        value, _ = self.to_arbitrary()
        return value.to_float64()

    def to_float32(self):
        '''Return a pair (value, accuracy) for this value rounded to binary32.'''
        value, _ = self.to_arbitrary()
        return value.to_float32()

    def to_string(self, text_format=None):
        value, _ = self.to_arbitrary()
        return value.to_string(text_format)

    def __float__(self):
        return self.to_float64()[0]

    def __str__(self):
        return self.to_string()

    def __repr__(self):
        words = self.to_bits()
        if not isinstance(words, tuple):
            words = (words, )
        text = ', '.join(f'0x{word:0{width // 4}x}'
                         for word, width in zip(words, self.word_widths))
        return f'{type(self).__name__}({text})'


class Binary16(EncodedValue):
    '''IEEE-754 half precision.'''
    __slots__ = ()
    fmt = BINARY16
    word_widths = (16, )


class BFloat16(EncodedValue):
    '''The top half of an IEEE-754 single precision number.'''
    __slots__ = ()
    fmt = BFLOAT16
    word_widths = (16, )


class Binary128(EncodedValue):
    '''IEEE-754 quadruple precision, as the words (hi, lo).'''
    __slots__ = ()
    fmt = BINARY128
    word_widths = (64, 64)


class Float80x86(EncodedValue):
    '''x87 extended precision, as the words (se, m): a 16-bit sign and exponent, and a
    64-bit mantissa with an explicit integer bit.  Numeric conversions raise
    Unimplemented.'''
    __slots__ = ()
    fmt = FLOAT80X86
    word_widths = (16, 64)


class Float128PPC(EncodedValue):
    '''IBM extended double: the unevaluated sum of two binary64 numbers, as the words (high,
    low).

    Its value is the exact sum of the components, rounded once by each conversion out of
    it.  Construction stores the whole value in high and +0 in low; the pair is not
    renormalized so precision beyond binary64 is lost.
    '''
    __slots__ = ()
    # There is no single format; each component is a BINARY64 encoding
    fmt = None
    word_widths = (64, 64)

    @classmethod
    def from_components(cls, high, low):
        '''Construct exactly from two Python floats.'''
        if not isinstance(high, float) or not isinstance(low, float):
            raise TypeError('components must be floats')
        high_bits, = unpack_uint64(pack_double(high))
        low_bits, = unpack_uint64(pack_double(low))
        return cls.from_bits(high_bits, low_bits)

    @classmethod
    def from_arbitrary(cls, value):
        '''Return a pair (encoded, accuracy).  The value is rounded to binary64 in high.'''
        high, accuracy = BINARY64.encode(value)
        return cls.from_bits(high, BINARY64.make_zero(False)), accuracy

    @classmethod
    def unpack(cls, raw, endianness=None):
        '''Construct from bytes: the high component followed by the low one.'''
        if len(raw) != 16:
            raise ValueError(f'expected 16 bytes to unpack; got {len(raw)}')
        return cls.from_bits(BINARY64.unpack(raw[:8], endianness),
                             BINARY64.unpack(raw[8:], endianness))

    def pack(self, endianness=None):
        high, low = self.to_bits()
        return BINARY64.pack(high, endianness) + BINARY64.pack(low, endianness)

    def components(self):
        '''Return the pair of Python floats (high, low).'''
        return tuple(unpack_double(pack_uint64(word))[0] for word in self.to_bits())

    def fields(self):
        '''Return a pair of DecodedFields, one per binary64 component.'''
        return tuple(BINARY64.decode(word) for word in self.to_bits())

    def classify(self):
        value, is_nan = self.to_arbitrary()
        if is_nan:
            return Classification.NAN
        if value.is_infinite():
            return Classification.INFINITY
        if value.is_zero():
            return Classification.ZERO
        if value.exponent_of_msb() < BINARY64.e_min:
            return Classification.DENORMAL
        return Classification.NORMAL

    def to_arbitrary(self):
        '''Return a pair (value, is_nan) where value is the exact sum of the components, with
        a precision of at least DOUBLE_DOUBLE_PRECISION.  If either component is a NaN so is
        the value, with the sign of high.'''
        high_fields, low_fields = self.fields()
        high, _ = BINARY64.to_arbitrary(high_fields)
        low, _ = BINARY64.to_arbitrary(low_fields)
        if high.is_nan() or low.is_nan():
            return ArbitraryFloat.nan(high.sign, 0, DOUBLE_DOUBLE_PRECISION), True
        precision = DOUBLE_DOUBLE_PRECISION
        if high.significand and low.significand:
            # The sum of two 53-bit significands whose LSBs are this far apart, plus a carry
            precision = max(precision, abs(high.exponent - low.exponent) + BINARY64.precision + 1)
        value, _ = high.add(low, precision)
        return value, value.is_nan()


#
# Useful internal helper routines
#

def lost_bits_from_rshift(significand, bits):
    '''Return what the lost bits would be were the significand shifted right the given number
    of bits (negative is a left shift).
    '''
    if bits <= 0:
        return LF_EXACTLY_ZERO
    # Prevent over-large shifts consuming memory
    bits = min(bits, significand.bit_length() + 2)
    bit_mask = 1 << (bits - 1)
    first_bit = bool(significand & bit_mask)
    second_bit = bool(significand & (bit_mask - 1))
    return first_bit * 2 + second_bit


def shift_right(significand, bits):
    '''Return the significand shifted right a given number of bits (left if bits is negative),
    and the fraction that is lost doing so.
    '''
    if bits <= 0:
        result = significand << -bits
    else:
        result = significand >> bits

    return result, lost_bits_from_rshift(significand, bits)


def round_up(lost_fraction, is_odd):
    '''Return True if, rounding half to even, the significand whose LSB is odd or even as
    given should be incremented (i.e., rounded away from zero).
    '''
    if lost_fraction == LF_EXACTLY_HALF:
        return is_odd
    return lost_fraction == LF_MORE_THAN_HALF


def rounding_accuracy(sign, lost_fraction, is_rounded_up):
    '''Return the Accuracy of a rounded result with the given sign.'''
    if lost_fraction == LF_EXACTLY_ZERO:
        return Accuracy.EXACT
    # Incrementing the significand moves the value away from zero
    return Accuracy.BELOW if bool(is_rounded_up) == bool(sign) else Accuracy.ABOVE


host_endianness = 'little' if Struct('=d').pack(-0.0)[0] == 0 else 'big'

HEX_SIGNIFICAND_REGEX = re.compile(
    # sign[opt] hex-sig-prefix
    '[-+]?0x'
    # (hex-integer[opt].fraction or hex-integer.[opt])
    '(([0-9a-f]*)\\.([0-9a-f]+)|([0-9a-f]+)\\.?)'
    # p exp-sign[opt]dec-exponent
    'p([-+]?[0-9]+)$',
    re.ASCII | re.IGNORECASE
)
NON_FINITE_REGEX = re.compile(
    # sign[opt] inf or infinity or nan
    '[-+]?(inf(?:inity)?|nan)$',
    re.ASCII | re.IGNORECASE
)
