import numpy as np
import pytest
from numba.core.errors import NumbaError

import histeq.reference as reference
from histeq.config import EqualizationConfig
from histeq.errors import ConfigurationError, DeviceResourceError, EmptyImageError, KernelBuildError
from histeq.pipeline import STAGES, EqualizationPipeline, equalize, flatten_image


def test_two_value_image(two_value_image):
    result = EqualizationPipeline(bins=256, scan='inclusive').run(two_value_image)

    assert result.counts[10] == 32
    assert result.counts[200] == 32
    assert result.counts.sum() == 64
    assert np.count_nonzero(result.counts) == 2

    assert np.all(result.cumulative[:10] == 0)
    assert np.all(result.cumulative[10:200] == 32)
    assert np.all(result.cumulative[200:] == 64)

    assert result.lut[10] == 127
    assert result.lut[200] == 255

    assert result.image.shape == two_value_image.shape
    assert result.image.dtype == np.uint8
    assert set(np.unique(result.image)) == {127, 255}
    assert np.all(result.image[:4] == 127)
    assert np.all(result.image[4:] == 255)


@pytest.mark.parametrize("histogram", ['naive', 'partitioned'])
def test_uniform_image_maps_to_255(histogram):
    image = np.full((16, 16), 128, dtype=np.uint8)
    result = EqualizationPipeline(histogram=histogram).run(image)
    assert np.all(result.lut[:128] == 0)
    assert np.all(result.lut[128:] == 255)
    assert np.all(result.image == 255)


def test_exclusive_scan_two_value_image(two_value_image):
    result = EqualizationPipeline(scan='exclusive').run(two_value_image)
    assert result.cumulative[0] == 0
    assert result.cumulative[10] == 0
    assert result.cumulative[11] == 32
    assert result.cumulative[201] == 64
    # Each bin receives its predecessors' total, so 10 -> 0 and 200 -> 127
    assert set(np.unique(result.image)) == {0, 127}


def test_exclusive_divisor_excludes_top_bin():
    image = np.full((8, 8), 10, dtype=np.uint8)
    image[:2] = 255
    inclusive = EqualizationPipeline(scan='inclusive').run(image)
    exclusive = EqualizationPipeline(scan='exclusive').run(image)

    total = image.size
    top = inclusive.counts[-1]
    assert inclusive.cumulative[-1] == total
    assert exclusive.cumulative[-1] == total - top
    assert inclusive.lut[10] == 48 * 255 // total
    assert exclusive.lut[255] == 255
    assert exclusive.lut[10] == 0


def test_exclusive_all_pixels_in_top_bin_is_rejected():
    image = np.full((4, 4), 255, dtype=np.uint8)
    with pytest.raises(EmptyImageError):
        EqualizationPipeline(scan='exclusive').run(image)


@pytest.mark.parametrize("histogram", ['naive', 'partitioned'])
@pytest.mark.parametrize("scan", ['inclusive', 'exclusive'])
@pytest.mark.parametrize("group_size", [256, 16])
def test_grayscale_matches_reference(histogram, scan, group_size, gray_image):
    config = EqualizationConfig(histogram=histogram, scan=scan, group_size=group_size)
    result = EqualizationPipeline(config).run(gray_image)
    expected = reference.equalize_reference(gray_image, result.edges, scan=scan)
    np.testing.assert_array_equal(result.image, expected)
    assert result.counts.sum() == gray_image.size


def test_output_is_lookup_of_original(gray_image):
    result = EqualizationPipeline(bins=32).run(gray_image)
    bins = np.array([reference.bin_of(v, result.edges) for v in gray_image.ravel()])
    np.testing.assert_array_equal(result.image.ravel(), result.lut[bins])


def test_colour_image_matches_reference(colour_image):
    result = EqualizationPipeline().run(colour_image)
    assert result.image.shape == colour_image.shape
    assert result.counts.sum() == colour_image.shape[0] * colour_image.shape[1]
    np.testing.assert_array_equal(result.image, reference.equalize_reference(colour_image, result.edges))


def test_colour_image_luma_source(colour_image):
    result = EqualizationPipeline(remap_source='luma').run(colour_image)
    assert np.all(result.image[..., 0] == result.image[..., 1])
    assert np.all(result.image[..., 0] == result.image[..., 2])
    expected = reference.equalize_reference(colour_image, result.edges, remap_source='luma')
    np.testing.assert_array_equal(result.image, expected)


def test_single_channel_axis(gray_image):
    image = gray_image[:, :, np.newaxis]
    result = EqualizationPipeline().run(image)
    assert result.image.shape == image.shape
    np.testing.assert_array_equal(result.image[:, :, 0], equalize(gray_image))


def test_non_uniform_bins(gray_image):
    edges = [0, 30, 60, 128, 129, 256]
    result = EqualizationPipeline(bin_edges=edges, scan='exclusive').run(gray_image)
    assert result.counts.size == 5
    assert result.lut.size == 5
    np.testing.assert_array_equal(result.image, reference.equalize_reference(gray_image, edges, scan='exclusive'))


def test_profile_records_every_stage(gray_image):
    result = EqualizationPipeline(profile=True, group_size=32).run(gray_image)
    assert set(result.timings) == set(STAGES)
    assert all(t >= 0 for t in result.timings.values())
    assert EqualizationPipeline().run(gray_image).timings == {}


def test_verbose_prints_dispatches(gray_image, capsys):
    EqualizationPipeline(verbose=True, profile=True).run(gray_image)
    out = capsys.readouterr().out
    for name in ('copy_samples', 'histogram_partitioned', 'hillis_steele_scan_local',
                 'normalize_cumulative', 'remap', 'Total device time'):
        assert name in out


def test_options_override_config(gray_image):
    base = EqualizationConfig(bins=64)
    pipeline = EqualizationPipeline(base, scan='exclusive')
    assert pipeline.config.bins == 64
    assert pipeline.config.scan == 'exclusive'
    assert base.scan == 'inclusive'


def test_rejects_empty_image():
    with pytest.raises(EmptyImageError):
        equalize(np.zeros((0, 5), dtype=np.uint8))


@pytest.mark.parametrize("image", [
    np.zeros((4, 4), dtype=np.uint16),
    np.zeros((4, 4), dtype=np.float32),
    np.zeros((4, 4, 4), dtype=np.uint8),
    np.zeros((2, 4, 4, 3), dtype=np.uint8),
    np.zeros(16, dtype=np.uint8),
])
def test_rejects_unsupported_images(image):
    with pytest.raises(ConfigurationError):
        flatten_image(image)


def test_failed_run_produces_no_output(two_value_image):
    pipeline = EqualizationPipeline(scan='exclusive')
    image = np.full((4, 4), 255, dtype=np.uint8)
    with pytest.raises(EmptyImageError):
        pipeline.run(image)
    # The pipeline stays usable for the next image
    assert pipeline.run(two_value_image).image.shape == two_value_image.shape


def test_missing_device_is_a_resource_error(gray_image, monkeypatch):
    import histeq.pipeline
    monkeypatch.setattr(histeq.pipeline.cuda, 'is_available', lambda: False)
    with pytest.raises(DeviceResourceError):
        EqualizationPipeline().run(gray_image)


def test_compile_failure_is_a_build_error():
    class BrokenKernel:
        def __getitem__(self, launch_config):
            def launch(*args):
                raise NumbaError("Cannot unify int32 and array(float64, 1d, C)")
            return launch

    pipeline = EqualizationPipeline()
    with pytest.raises(KernelBuildError) as excinfo:
        pipeline._launch('histogram', 'histogram_partitioned', BrokenKernel(), 16)
    assert excinfo.value.kernel_name == 'histogram_partitioned'
    assert 'Cannot unify' in excinfo.value.log


def test_scan_allocation_failure_is_a_resource_error(gray_image, monkeypatch):
    import histeq.pipeline
    device_array = histeq.pipeline.cuda.device_array
    calls = []

    def failing_device_array(*args, **kwargs):
        calls.append(args)
        # luma, lut and output come first; the fourth is the scan output buffer
        if len(calls) == 4:
            raise MemoryError("CUDA_ERROR_OUT_OF_MEMORY")
        return device_array(*args, **kwargs)

    monkeypatch.setattr(histeq.pipeline.cuda, 'device_array', failing_device_array)
    with pytest.raises(DeviceResourceError) as excinfo:
        EqualizationPipeline(scan='inclusive').run(gray_image)
    assert len(calls) == 4
    assert excinfo.value.platform_message == "CUDA_ERROR_OUT_OF_MEMORY"


def test_scan_upload_failure_is_a_resource_error(gray_image, monkeypatch):
    import histeq.pipeline
    to_device = histeq.pipeline.cuda.to_device
    calls = []

    def failing_to_device(array, *args, **kwargs):
        calls.append(array)
        # image, edges and zeroed counts come first; the fourth is the padded scan input
        if len(calls) == 4:
            raise MemoryError("CUDA_ERROR_OUT_OF_MEMORY")
        return to_device(array, *args, **kwargs)

    monkeypatch.setattr(histeq.pipeline.cuda, 'to_device', failing_to_device)
    with pytest.raises(DeviceResourceError):
        EqualizationPipeline(scan='exclusive').run(gray_image)
    assert len(calls) == 4
    assert calls[3].size == 256
