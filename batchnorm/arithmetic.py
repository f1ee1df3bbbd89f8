from .autofunc import Result


def _check_affine_shapes(in_size, bias_size, scale_size, n):
    if bias_size != scale_size:
        raise ValueError(f"bias has {bias_size} channels but scale has {scale_size}")
    if n <= 0 or in_size != n * scale_size:
        raise ValueError(f"input size {in_size} does not hold {n} blocks of {scale_size}")


class AddMulResult(Result):
    """
    Fused (input + repeat(bias, n)) * repeat(scale, n).

    Args:
        input: Result of size n * C
        bias: Result of size C, added to every block
        scale: Result of size C, multiplied into every block after the bias
        n: number of blocks in input
    """

    def __init__(self, input, bias, scale, n):
        _check_affine_shapes(len(input.output), len(bias.output), len(scale.output), n)
        self.input = input
        self.bias = bias
        self.scale = scale
        self.n = n

        out = input.output.reshape(n, -1) + bias.output
        out *= scale.output
        self._output = out.reshape(-1)

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.input.constant(grad) and self.bias.constant(grad) and self.scale.constant(grad)

    def propagate_gradient(self, upstream, grad):
        blocks = upstream.reshape(self.n, -1)
        if not self.scale.constant(grad):
            shifted = self.input.output.reshape(self.n, -1) + self.bias.output
            self.scale.propagate_gradient((blocks * shifted).sum(axis=0), grad)
        if not self.bias.constant(grad):
            self.bias.propagate_gradient(blocks.sum(axis=0) * self.scale.output, grad)
        if not self.input.constant(grad):
            # Last consumer of upstream, so it is safe to scale it in place.
            blocks *= self.scale.output
            self.input.propagate_gradient(blocks.reshape(-1), grad)


class MulAddResult(Result):
    """
    Fused input * repeat(scale, n) + repeat(bias, n).

    The learned affine transform applied after normalization.
    """

    def __init__(self, input, scale, bias, n):
        _check_affine_shapes(len(input.output), len(bias.output), len(scale.output), n)
        self.input = input
        self.scale = scale
        self.bias = bias
        self.n = n

        out = input.output.reshape(n, -1) * scale.output
        out += bias.output
        self._output = out.reshape(-1)

    @property
    def output(self):
        return self._output

    def constant(self, grad):
        return self.input.constant(grad) and self.bias.constant(grad) and self.scale.constant(grad)

    def propagate_gradient(self, upstream, grad):
        blocks = upstream.reshape(self.n, -1)
        if not self.scale.constant(grad):
            in_blocks = self.input.output.reshape(self.n, -1)
            self.scale.propagate_gradient((blocks * in_blocks).sum(axis=0), grad)
        if not self.bias.constant(grad):
            self.bias.propagate_gradient(blocks.sum(axis=0), grad)
        if not self.input.constant(grad):
            blocks *= self.scale.output
            self.input.propagate_gradient(blocks.reshape(-1), grad)


def add_mul(input, bias, scale, n):
    """Repeat bias and scale n times and compute (input + bias) * scale."""
    return AddMulResult(input, bias, scale, n)


def mul_add(input, scale, bias, n):
    """Repeat scale and bias n times and compute input * scale + bias."""
    return MulAddResult(input, scale, bias, n)
