"""
BioTriage - Acoustic Feature Extraction Tests

Run with: pytest tests/test_acoustic_features.py -v
"""

import math

import numpy as np
import pytest

from biotriage.core.exceptions import InsufficientDataError
from biotriage.core.types import AudioBuffer
from biotriage.services.acoustic_features import (
    HNR_CEILING_DB,
    AutocorrelationFeatureExtractor,
    FeatureExtractor,
    harmonics_to_noise_db,
    perturbation,
)


class TestAudioBuffer:
    """Tests for the AudioBuffer value type."""

    def test_samples_are_read_only(self):
        """Buffers are immutable snapshots."""
        buffer = AudioBuffer(samples=[0.1, 0.2, 0.3], sample_rate=8000)
        with pytest.raises(ValueError):
            buffer.samples[0] = 1.0

    def test_duration(self):
        buffer = AudioBuffer(samples=np.zeros(8000), sample_rate=16000)
        assert buffer.duration_seconds == pytest.approx(0.5)

    def test_from_pcm16_scales_to_unit_range(self):
        """0x4000 is half of full scale; a trailing odd byte is ignored."""
        raw = b"\x00\x40" + b"\x00\xc0" + b"\x01"
        buffer = AudioBuffer.from_pcm16(raw, 16000)

        assert len(buffer) == 2
        assert buffer.samples[0] == pytest.approx(0.5)
        assert buffer.samples[1] == pytest.approx(-0.5)

    def test_head_truncates(self, sine_buffer):
        buffer = sine_buffer(seconds=3.0)
        head = buffer.head(1.0)
        assert head.duration_seconds == pytest.approx(1.0)
        assert buffer.head(10.0) is buffer


class TestAutocorrelationExtractor:
    """Tests for the numpy feature extractor."""

    def test_implements_protocol(self, extractor):
        assert isinstance(extractor, FeatureExtractor)
        assert "pitch_hz" in extractor.feature_names

    def test_sine_pitch_and_loudness(self, extractor, sine_buffer):
        """A 150 Hz tone at amplitude 0.3 is recovered within tolerance."""
        features = extractor.extract(sine_buffer(frequency=150.0, seconds=2.0, amplitude=0.3))

        assert features.pitch_hz == pytest.approx(150.0, abs=5.0)
        assert features.loudness == pytest.approx(0.3 / math.sqrt(2), abs=0.05)
        assert features.duration_seconds == pytest.approx(2.0)

    def test_silence_is_all_zero(self, extractor, silent_buffer):
        """Silence has no pitch, energy, spectrum or crossings."""
        features = extractor.extract(silent_buffer)

        assert features.pitch_hz == 0
        assert features.loudness == 0
        assert features.spectral_centroid_hz == 0
        assert features.zero_crossing_rate == 0
        assert features.band_energies == (0.0,) * 8
        assert features.is_silent

    def test_empty_buffer_rejected(self, extractor):
        with pytest.raises(InsufficientDataError) as exc_info:
            extractor.extract(AudioBuffer(samples=[], sample_rate=16000))
        assert exc_info.value.code == "INSUFFICIENT_DATA"

    def test_zero_sample_rate_rejected(self, extractor):
        with pytest.raises(InsufficientDataError):
            extractor.extract(AudioBuffer(samples=[0.1, 0.2], sample_rate=0))

    def test_centroid_of_bin_aligned_tone(self, extractor, sine_buffer):
        """1000 Hz falls exactly on a bin of the 2048-point transform at 16 kHz."""
        features = extractor.extract(sine_buffer(frequency=1000.0, seconds=1.0))
        assert features.spectral_centroid_hz == pytest.approx(1000.0, abs=1.0)

    def test_zero_crossing_rate_of_tone(self, extractor, sine_buffer):
        """A tone crosses zero twice per period."""
        features = extractor.extract(sine_buffer(frequency=150.0, seconds=2.0))
        assert features.zero_crossing_rate == pytest.approx(300 / 16000, abs=0.002)

    def test_band_energies_shape(self, extractor, sine_buffer):
        features = extractor.extract(sine_buffer(frequency=1000.0, seconds=1.0))

        assert len(features.band_energies) == 8
        assert all(e >= 0 for e in features.band_energies)
        # 1000 Hz is bin 128, the first bin of the second band (width 128)
        assert features.band_energies[1] > features.band_energies[5]

    def test_single_sample_buffer(self, extractor):
        """Too short for pitch or spectrum, but still a valid vector."""
        features = extractor.extract(AudioBuffer(samples=[0.5], sample_rate=16000))

        assert features.pitch_hz == 0
        assert features.spectral_centroid_hz == 0
        assert features.band_energies == (0.0,) * 8
        assert features.loudness == pytest.approx(0.5)

    def test_deterministic(self, extractor, sine_buffer):
        buffer = sine_buffer(frequency=220.0)
        assert extractor.extract(buffer) == extractor.extract(buffer)

    def test_extract_keeps_no_instance_state(self, extractor, sine_buffer):
        """Extraction does not mutate the extractor shared across sessions."""
        before = dict(vars(extractor))
        extractor.extract(sine_buffer())
        extractor.extract(sine_buffer(frequency=220.0))
        assert vars(extractor) == before

    def test_custom_fft_cap_keeps_band_count(self, sine_buffer):
        small = AutocorrelationFeatureExtractor(fft_size_cap=256)
        features = small.extract(sine_buffer())
        assert len(features.band_energies) == 8

    @pytest.mark.asyncio
    async def test_extract_async(self, extractor, sine_buffer):
        buffer = sine_buffer()
        features = await extractor.extract_async(buffer)
        assert features == extractor.extract(buffer)


class TestVoicePerturbation:
    """Jitter, shimmer and HNR of steady and noisy tones."""

    @staticmethod
    def noisy(sine_buffer, noise: float = 0.08) -> AudioBuffer:
        clean = sine_buffer(frequency=150.0, seconds=2.0, amplitude=0.3)
        rng = np.random.default_rng(0)
        samples = clean.samples + rng.normal(0.0, noise, len(clean))
        return AudioBuffer(samples=samples, sample_rate=clean.sample_rate)

    def test_steady_tone(self, extractor, sine_buffer):
        features = extractor.extract(sine_buffer(frequency=150.0, seconds=2.0))

        assert features.jitter == pytest.approx(0.0, abs=0.005)
        assert features.shimmer == pytest.approx(0.0, abs=0.005)
        assert features.hnr_db > 20

    def test_noise_raises_perturbation(self, extractor, sine_buffer):
        steady = extractor.extract(sine_buffer(frequency=150.0, seconds=2.0))
        noisy = extractor.extract(self.noisy(sine_buffer))

        assert noisy.jitter > 0.01
        assert noisy.jitter > steady.jitter
        assert noisy.shimmer > 0.01
        assert noisy.shimmer > steady.shimmer
        assert noisy.hnr_db < steady.hnr_db - 10

    def test_values_are_finite(self, extractor, sine_buffer):
        features = extractor.extract(self.noisy(sine_buffer))
        assert all(
            math.isfinite(v) for v in (features.jitter, features.shimmer, features.hnr_db)
        )

    def test_silence_has_none(self, extractor, silent_buffer):
        features = extractor.extract(silent_buffer)

        assert features.jitter is None
        assert features.shimmer is None
        assert features.hnr_db is None

    def test_hnr_ceiling(self):
        assert harmonics_to_noise_db(1.0) == HNR_CEILING_DB
        assert harmonics_to_noise_db(0.5) == pytest.approx(0.0)
        assert harmonics_to_noise_db(0.9) == pytest.approx(9.54, abs=0.01)

    def test_too_few_cycles(self):
        """Two upward crossings make one cycle, with no neighbour to compare."""
        t = np.arange(200) / 16000
        x = 0.3 * np.sin(2 * np.pi * 150.0 * t)
        assert perturbation(x, 16000, 80.0, 400.0) == (None, None)

    def test_noisy_api_features(self, client, sine_buffer):
        samples = self.noisy(sine_buffer).samples.tolist()
        response = client.post("/api/features", json={"audio": {"samples": samples, "sample_rate": 16000}})

        data = response.json()["features"]
        assert data["jitter"] > 0.01
        assert data["hnr_db"] < 20


@pytest.mark.integration
class TestLibrosaExtractor:
    """Tests for the librosa backend (skipped without librosa)."""

    @pytest.fixture
    def librosa_extractor(self):
        pytest.importorskip("librosa")
        from biotriage.services.acoustic_features import LibrosaFeatureExtractor

        return LibrosaFeatureExtractor()

    def test_sine_pitch(self, librosa_extractor, sine_buffer):
        features = librosa_extractor.extract(sine_buffer(frequency=150.0, seconds=2.0))

        assert features.pitch_hz == pytest.approx(150.0, abs=5.0)
        assert features.loudness == pytest.approx(0.3 / math.sqrt(2), abs=0.05)
        assert len(features.band_energies) == 8

    def test_empty_buffer_rejected(self, librosa_extractor):
        with pytest.raises(InsufficientDataError):
            librosa_extractor.extract(AudioBuffer(samples=[], sample_rate=16000))

    def test_silence_has_no_pitch(self, librosa_extractor, silent_buffer):
        features = librosa_extractor.extract(silent_buffer)
        assert features.pitch_hz == 0
        assert features.loudness == 0
