import pytest

from dionysos.image import DiosfsImage
from dionysos.layout import BLOCK_SIZE, InodeType, SizeCalculation
from dionysos.mkfs import DEFAULT_DIRECTORIES, build_image, main, parse_size


def small_image():
    layout = SizeCalculation(
        total_blocks=4096,
        total_inodes=64,
        total_data_blocks=4000,
        total_block_bitmap_blocks=1,
        total_inode_bitmap_blocks=1,
    )
    return DiosfsImage(layout)


def read_file(image, inode):
    chunks = []
    for relative in range(inode.block_count):
        number = image.block_number_for(inode, relative)
        chunks.append(image.read_block(image.block_start + number))
    return b"".join(chunks)[: inode.size]


@pytest.mark.parametrize("text, expected", [("1", 1), ("4", 4), ("8", 8), ("+2", 2)])
def test_parse_size_valid(text, expected):
    assert parse_size(text) == expected


@pytest.mark.parametrize("text", ["9", "0", "", "abc", "4x", "-1", "1.5"])
def test_parse_size_rejects(text):
    with pytest.raises(ValueError):
        parse_size(text)


def test_build_image_default_directories():
    image = small_image()
    root = build_image(image, [])
    assert root.name == "/"
    names = [entry.name for entry in image.directory_entries(root)]
    assert names == list(DEFAULT_DIRECTORIES)
    for entry in image.directory_entries(root):
        assert entry.type == InodeType.DIRECTORY
        assert entry.parent_inode_number == root.inode_number


def test_home_is_inode_three():
    image = small_image()
    build_image(image, [])
    assert image.read_inode(3).name == "home"


def test_build_image_copies_files_into_home(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "sub").mkdir()
    first = b"hello diosfs\n"
    second = bytes(range(256)) * 12
    (tmp_path / "sub" / "notes.txt").write_bytes(first)
    (tmp_path / "plain.bin").write_bytes(second)

    image = small_image()
    build_image(image, ["sub/notes.txt", "plain.bin"])
    home = image.read_inode(3)
    entries = image.directory_entries(home)
    assert [entry.name for entry in entries] == ["notes.txt", "plain.bin"]

    for entry, data in zip(entries, [first, second]):
        assert entry.type == InodeType.REG_FILE
        inode = image.read_inode(entry.inode_number)
        assert inode.size == len(data)
        assert inode.parent_inode_number == home.inode_number
        assert read_file(image, inode) == data


def test_large_file_spans_blocks(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    data = bytes((i * 7) % 251 for i in range(BLOCK_SIZE * 3 + 17))
    (tmp_path / "big").write_bytes(data)
    image = small_image()
    build_image(image, ["big"])
    entry = image.directory_entries(image.read_inode(3))[0]
    inode = image.read_inode(entry.inode_number)
    assert inode.block_count == 4
    assert read_file(image, inode) == data


def test_build_image_missing_file_raises(tmp_path):
    image = small_image()
    with pytest.raises(OSError):
        build_image(image, [str(tmp_path / "absent.txt")])


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().out


def test_main_one_argument(capsys):
    assert main(["only.img"]) == 1
    assert "Usage" in capsys.readouterr().out


def test_main_bad_flag(tmp_path):
    out = tmp_path / "out.img"
    assert main([str(out), "1", "-x"]) == 1
    assert not out.exists()


@pytest.mark.parametrize("size", ["9", "0", "abc"])
def test_main_bad_size(tmp_path, size):
    out = tmp_path / "out.img"
    assert main([str(out), size]) == 1
    assert not out.exists()


def test_main_missing_input_file(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    out = tmp_path / "out.img"
    assert main([str(out), "1", "--f", "missing.txt"]) == 1
    assert "Error opening file" in capsys.readouterr().out
    assert not out.exists()