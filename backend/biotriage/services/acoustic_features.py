"""
BioTriage - Acoustic Feature Extraction Service

Turns a mono recording into a small, fixed set of acoustic descriptors that
the acoustic classifier maps to stress, emotion, breathing and voice quality.

Architecture:
    - Protocol defines the interface for feature extraction
    - AutocorrelationFeatureExtractor: numpy implementation (default)
    - LibrosaFeatureExtractor: librosa primitives (optional backend)

Features:
    1. Pitch (F0): normalized autocorrelation peak in the 80-400 Hz range
    2. Loudness: RMS over the whole buffer
    3. Spectral centroid: magnitude-weighted mean frequency
    4. Zero-crossing rate: sign changes per sample
    5. Band energies: mean spectral magnitude in 8 contiguous bands
    6. Jitter / shimmer: cycle-to-cycle perturbation of period and peak amplitude
    7. HNR: harmonics-to-noise ratio in dB from the autocorrelation peak

Privacy Considerations:
    - Features are DERIVED data; the raw samples are never logged or kept
    - Extraction is deterministic and has no side effects
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

import numpy as np

from biotriage.core.exceptions import InsufficientDataError
from biotriage.core.types import AudioBuffer, FeatureVector

logger = logging.getLogger(__name__)


FEATURE_NAMES = [
    "pitch_hz",
    "loudness",
    "spectral_centroid_hz",
    "zero_crossing_rate",
    "band_energies",
    "duration_seconds",
    "jitter",
    "shimmer",
    "hnr_db",
]

# Autocorrelation peaks this close to 1 all map to the ceiling
HNR_CEILING_DB = 40.0


# =============================================================================
# Protocol (Interface)
# =============================================================================

@runtime_checkable
class FeatureExtractor(Protocol):
    """
    Protocol for acoustic feature extraction.

    Implementations must be deterministic: the same buffer always yields
    the same FeatureVector.
    """

    @abstractmethod
    def extract(self, buffer: AudioBuffer) -> FeatureVector:
        """
        Extract acoustic features from a recording.

        Args:
            buffer: Mono recording with a known sample rate

        Returns:
            FeatureVector for the whole buffer

        Raises:
            InsufficientDataError: buffer is empty or has no sample rate
        """
        ...

    @abstractmethod
    async def extract_async(self, buffer: AudioBuffer) -> FeatureVector:
        """Async version for non-blocking extraction."""
        ...

    @property
    @abstractmethod
    def feature_names(self) -> list[str]:
        """Return list of feature names this extractor produces."""
        ...

    @property
    @abstractmethod
    def extractor_id(self) -> str:
        """Return identifier for logging/tracking."""
        ...


def _check_buffer(buffer: AudioBuffer) -> None:
    if len(buffer) == 0:
        raise InsufficientDataError(
            "Audio buffer is empty",
            details={"samples": 0, "sample_rate": buffer.sample_rate},
        )
    if buffer.sample_rate <= 0:
        raise InsufficientDataError(
            "Audio buffer has no usable sample rate",
            details={"samples": len(buffer), "sample_rate": buffer.sample_rate},
        )


def _split_bands(magnitudes: np.ndarray, band_count: int) -> tuple[float, ...]:
    """Mean magnitude of `band_count` equal contiguous slices; empty slices are 0."""
    width = len(magnitudes) // band_count
    energies = []
    for band in range(band_count):
        start = band * width
        end = min((band + 1) * width, len(magnitudes))
        if end > start:
            energies.append(float(np.mean(magnitudes[start:end])))
        else:
            energies.append(0.0)
    return tuple(energies)


def autocorrelation_peak(
    x: np.ndarray,
    sr: int,
    pitch_min_hz: float,
    pitch_max_hz: float,
) -> tuple[int, float]:
    """
    Lag and value of the highest normalized autocorrelation
    sum(x[i] * x[i+lag]) / sum(x[i]^2) over i < n - lag, searched over the
    lags of the pitch range. Returns (0, 0.0) when no lag correlates
    positively.
    """
    n = len(x)
    min_lag = int(sr // pitch_max_hz)
    max_lag = min(int(sr // pitch_min_hz), n // 2)
    if max_lag <= min_lag:
        return 0, 0.0

    # energy[k] = sum(x[0..k]^2), so the normalizer for a lag is energy[n - lag - 1]
    energy = np.cumsum(x * x)

    best_lag = 0
    best_score = 0.0
    for lag in range(min_lag, max_lag):
        if lag <= 0:
            continue
        normalizer = energy[n - lag - 1]
        if normalizer <= 0:
            continue
        score = float(np.dot(x[:n - lag], x[lag:])) / float(normalizer)
        if score > best_score:
            best_score = score
            best_lag = lag

    return best_lag, best_score


def harmonics_to_noise_db(peak: float) -> float:
    """10 * log10(r / (1 - r)) for a positive autocorrelation peak r."""
    ceiling = 10 ** (HNR_CEILING_DB / 10)
    if peak >= ceiling / (1 + ceiling):
        return HNR_CEILING_DB
    return float(10 * np.log10(peak / (1 - peak)))


def perturbation(
    x: np.ndarray,
    sr: int,
    pitch_min_hz: float,
    pitch_max_hz: float,
) -> tuple[Optional[float], Optional[float]]:
    """
    Jitter and shimmer over the voiced cycles of a recording.

    A cycle runs from an upward zero crossing (interpolated between samples)
    to the first crossing at least one shortest pitch period later. Cycles
    longer than the longest pitch period are unvoiced and break the run.

    Jitter is the mean absolute change between consecutive cycle lengths
    over the mean cycle length; shimmer is the same ratio for the peak
    amplitude of each cycle. Both are None without two consecutive cycles.
    """
    rising = np.flatnonzero((x[:-1] <= 0) & (x[1:] > 0)) + 1
    if len(rising) < 3:
        return None, None
    before = x[rising - 1]
    after = x[rising]
    crossings = (rising - 1) - before / (after - before)

    min_period = sr / pitch_max_hz
    max_period = sr / pitch_min_hz

    periods, peaks = [], []
    period_changes, peak_changes = [], []
    previous = None
    start = 0
    while True:
        end = int(np.searchsorted(crossings, crossings[start] + min_period))
        if end >= len(crossings):
            break
        period = float(crossings[end] - crossings[start])
        if period <= max_period:
            peak = float(np.max(np.abs(x[rising[start]:rising[end]])))
            if previous is not None:
                period_changes.append(abs(period - previous[0]))
                peak_changes.append(abs(peak - previous[1]))
            periods.append(period)
            peaks.append(peak)
            previous = (period, peak)
        else:
            previous = None
        start = end

    if not period_changes:
        return None, None
    jitter = float(np.mean(period_changes) / np.mean(periods))
    shimmer = float(np.mean(peak_changes) / np.mean(peaks))
    return jitter, shimmer


# =============================================================================
# Numpy Implementation (Default)
# =============================================================================

class AutocorrelationFeatureExtractor:
    """
    Feature extractor built on numpy only.

    Pitch is the lag with the highest normalized autocorrelation
    sum(x[i] * x[i+lag]) / sum(x[i]^2) over i < n - lag. The spectrum comes
    from a single FFT over the largest power-of-two prefix of the buffer,
    capped at `fft_size_cap` samples.
    Jitter, shimmer and HNR come from the zero-crossing cycles and the same
    autocorrelation peak as the pitch.
    """

    def __init__(
        self,
        fft_size_cap: int = 2048,
        band_count: int = 8,
        pitch_min_hz: float = 80.0,
        pitch_max_hz: float = 400.0,
    ):
        self._fft_size_cap = fft_size_cap
        self._band_count = band_count
        self._pitch_min_hz = pitch_min_hz
        self._pitch_max_hz = pitch_max_hz

    @property
    def feature_names(self) -> list[str]:
        return FEATURE_NAMES

    @property
    def extractor_id(self) -> str:
        return "autocorr-numpy-v1.0"

    def extract(self, buffer: AudioBuffer) -> FeatureVector:
        _check_buffer(buffer)

        x = buffer.samples
        sr = buffer.sample_rate
        magnitudes, fft_size = self._half_spectrum(x)
        lag, peak = autocorrelation_peak(x, sr, self._pitch_min_hz, self._pitch_max_hz)
        jitter, shimmer = perturbation(x, sr, self._pitch_min_hz, self._pitch_max_hz)

        features = FeatureVector(
            pitch_hz=sr / lag if lag > 0 else 0.0,
            loudness=float(np.sqrt(np.mean(x * x))),
            spectral_centroid_hz=self._centroid(magnitudes, sr, fft_size),
            zero_crossing_rate=self._zero_crossing_rate(x),
            band_energies=_split_bands(magnitudes, self._band_count),
            duration_seconds=buffer.duration_seconds,
            jitter=jitter,
            shimmer=shimmer,
            hnr_db=harmonics_to_noise_db(peak) if lag > 0 else None,
        )

        logger.debug(
            "AutocorrFeatures: %.2fs audio, pitch=%.1fHz, loudness=%.3f",
            features.duration_seconds,
            features.pitch_hz,
            features.loudness,
        )
        return features

    async def extract_async(self, buffer: AudioBuffer) -> FeatureVector:
        """Run extraction in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract, buffer)

    def _half_spectrum(self, x: np.ndarray) -> tuple[np.ndarray, int]:
        fft_size = min(self._fft_size_cap, 2 ** int(np.floor(np.log2(len(x)))))
        spectrum = np.fft.fft(x[:fft_size])
        return np.abs(spectrum[: fft_size // 2]), fft_size

    @staticmethod
    def _centroid(magnitudes: np.ndarray, sr: int, fft_size: int) -> float:
        total = float(np.sum(magnitudes))
        if total <= 0:
            return 0.0
        frequencies = np.arange(len(magnitudes)) * sr / fft_size
        return float(np.sum(frequencies * magnitudes) / total)

    @staticmethod
    def _zero_crossing_rate(x: np.ndarray) -> float:
        non_negative = x >= 0
        crossings = int(np.count_nonzero(non_negative[1:] != non_negative[:-1]))
        return crossings / len(x)


# =============================================================================
# Librosa-based Extractor
# =============================================================================

class LibrosaFeatureExtractor:
    """
    Feature extractor using librosa primitives.

    Produces the same FeatureVector fields as the numpy extractor, computed
    frame-wise and averaged over the recording:
    - Pitch: median of voiced `librosa.yin` estimates
    - Loudness: mean of `librosa.feature.rms`
    - Centroid / ZCR: mean of the frame-wise librosa features
    - Band energies: time-averaged `librosa.stft` magnitude, split into bands
    - Jitter / shimmer / HNR: the numpy cycle and autocorrelation helpers

    All processing is done LOCALLY - no audio is sent to external APIs.
    """

    FRAME_LENGTH = 2048
    HOP_LENGTH = 512

    def __init__(
        self,
        band_count: int = 8,
        pitch_min_hz: float = 80.0,
        pitch_max_hz: float = 400.0,
    ):
        self._band_count = band_count
        self._pitch_min_hz = pitch_min_hz
        self._pitch_max_hz = pitch_max_hz

        # Lazy load librosa
        self._librosa = None
        self._load_dependencies()

    def _load_dependencies(self) -> None:
        """Load librosa."""
        try:
            import librosa

            self._librosa = librosa
            logger.info("LibrosaFeatureExtractor initialized")

        except ImportError as e:
            raise ImportError(
                "LibrosaFeatureExtractor requires 'librosa'. "
                "Install with: pip install librosa"
            ) from e

    @property
    def feature_names(self) -> list[str]:
        return FEATURE_NAMES

    @property
    def extractor_id(self) -> str:
        return "librosa-features-v1.0"

    def extract(self, buffer: AudioBuffer) -> FeatureVector:
        _check_buffer(buffer)

        y = np.asarray(buffer.samples, dtype=np.float32)
        sr = buffer.sample_rate
        frame_length = self._frame_length(len(y))
        x = np.asarray(buffer.samples, dtype=np.float64)
        lag, peak = autocorrelation_peak(x, sr, self._pitch_min_hz, self._pitch_max_hz)
        jitter, shimmer = perturbation(x, sr, self._pitch_min_hz, self._pitch_max_hz)

        features = FeatureVector(
            pitch_hz=self._pitch(y, sr),
            loudness=float(np.mean(self._librosa.feature.rms(
                y=y, frame_length=frame_length, hop_length=self.HOP_LENGTH,
            ))),
            spectral_centroid_hz=float(np.mean(self._librosa.feature.spectral_centroid(
                y=y, sr=sr, n_fft=frame_length, hop_length=self.HOP_LENGTH,
            ))),
            zero_crossing_rate=float(np.mean(self._librosa.feature.zero_crossing_rate(
                y, frame_length=frame_length, hop_length=self.HOP_LENGTH,
            ))),
            band_energies=self._band_energies(y, frame_length),
            duration_seconds=buffer.duration_seconds,
            jitter=jitter,
            shimmer=shimmer,
            hnr_db=harmonics_to_noise_db(peak) if lag > 0 else None,
        )

        logger.debug(
            "LibrosaFeatures: %.2fs audio, pitch=%.1fHz, loudness=%.3f",
            features.duration_seconds,
            features.pitch_hz,
            features.loudness,
        )
        return features

    async def extract_async(self, buffer: AudioBuffer) -> FeatureVector:
        """Run extraction in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract, buffer)

    def _frame_length(self, n: int) -> int:
        if n >= self.FRAME_LENGTH:
            return self.FRAME_LENGTH
        return max(2, 2 ** int(np.floor(np.log2(n))))

    def _pitch(self, y: np.ndarray, sr: int) -> float:
        # yin needs at least two periods of the lowest pitch in a frame
        if len(y) < self.FRAME_LENGTH or not np.any(y):
            return 0.0
        f0 = self._librosa.yin(
            y,
            fmin=self._pitch_min_hz,
            fmax=self._pitch_max_hz,
            sr=sr,
            frame_length=self.FRAME_LENGTH,
            hop_length=self.HOP_LENGTH,
        )
        f0 = f0[np.isfinite(f0)]
        if len(f0) == 0:
            return 0.0
        return float(np.median(f0))

    def _band_energies(self, y: np.ndarray, frame_length: int) -> tuple[float, ...]:
        stft = np.abs(self._librosa.stft(y, n_fft=frame_length, hop_length=self.HOP_LENGTH))
        # Drop the Nyquist bin so the spectrum matches the numpy extractor's half
        magnitudes = np.mean(stft, axis=1)[: frame_length // 2]
        return _split_bands(magnitudes, self._band_count)
