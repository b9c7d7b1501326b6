import unittest

import numpy as np

from audiotutor.audio.pcm import decode_pcm16, encode_pcm16, to_mono
from audiotutor.errors import DecodeError


class PcmTests(unittest.TestCase):
    def test_decode_reproduces_encoded_samples(self) -> None:
        rng = np.random.default_rng(7)
        samples = rng.uniform(-1.0, 0.999, size=1000).astype(np.float32)
        decoded = decode_pcm16(encode_pcm16(samples))
        self.assertEqual(decoded.shape, (1000, 1))
        self.assertEqual(decoded.dtype, np.float32)
        np.testing.assert_allclose(decoded[:, 0], samples, atol=1.0 / 32768)

    def test_odd_length_truncates_final_byte(self) -> None:
        data = encode_pcm16(np.array([0.25, -0.5])) + b"\x7f"
        decoded = decode_pcm16(data)
        self.assertEqual(decoded.shape, (2, 1))
        self.assertAlmostEqual(float(decoded[1, 0]), -0.5)

    def test_stereo_frames(self) -> None:
        data = encode_pcm16(np.array([0.5, -0.5, 0.25, -0.25]))
        decoded = decode_pcm16(data, channels=2)
        self.assertEqual(decoded.shape, (2, 2))
        np.testing.assert_allclose(to_mono(decoded), [0.0, 0.0], atol=1e-4)

    def test_encode_clips_out_of_range(self) -> None:
        decoded = decode_pcm16(encode_pcm16(np.array([2.0, -2.0])))
        self.assertAlmostEqual(float(decoded[0, 0]), 32767 / 32768)
        self.assertAlmostEqual(float(decoded[1, 0]), -1.0)

    def test_undersized_or_malformed_input_fails(self) -> None:
        with self.assertRaises(DecodeError):
            decode_pcm16(b"")
        with self.assertRaises(DecodeError):
            decode_pcm16(b"\x01")
        with self.assertRaises(DecodeError):
            decode_pcm16("not bytes")  # type: ignore[arg-type]
        with self.assertRaises(DecodeError):
            decode_pcm16(b"\x00\x00", channels=0)


if __name__ == "__main__":
    unittest.main()
